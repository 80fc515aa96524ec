"""Language-model classification and extraction of training emails."""

from .analyzer import AnalysisReport, EmailAnalyzer
from .client import LLMClient
from .parser import parse_classification_response, parse_extraction_response

__all__ = [
    "AnalysisReport",
    "EmailAnalyzer",
    "LLMClient",
    "parse_classification_response",
    "parse_extraction_response",
]
