"""Exception types raised across the tracker."""

from __future__ import annotations

from enum import Enum


class InvalidKeyError(ValueError):
    """An extended code or start date cannot be part of a natural key."""


class StoreError(Exception):
    """A persistent table could not be read or written."""


class LLMErrorCode(str, Enum):
    """Closed set of failure kinds on the language-model path."""

    API_ERROR = "API_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"


class LLMError(Exception):
    """Typed failure of a classification or extraction call.

    ``CONFIG_ERROR`` is raised before any network traffic, so callers can
    tell a missing API key apart from a runtime or API failure.
    """

    def __init__(
        self,
        message: str,
        code: LLMErrorCode,
        *,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.http_status = http_status


class ProviderNotConfiguredError(Exception):
    """A geocoding provider lacks its API key; raised before any request."""
