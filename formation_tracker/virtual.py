"""Virtual formations: remote sessions whose location is a fixed address.

Sessions whose extended code ends in ``CV`` + digit are delivered
remotely; their canonical address is the provider's remote-teaching
centre, whatever the emails say.
"""

from __future__ import annotations

import re

from .models import Formation

VIRTUAL_FORMATION_ADDRESS = "2 allée du Commandant Charcot 77200 TORCY (France)"

_VIRTUAL_CODE = re.compile(r"CV\d$")


def is_virtual_code(extended_code: str | None) -> bool:
    if not extended_code:
        return False
    return bool(_VIRTUAL_CODE.search(extended_code.strip().upper()))


def apply_virtual_location(formation: Formation) -> Formation:
    """Force the virtual address on *formation* when its code calls for it.

    Coordinates are cleared so the address is geocoded again, except on
    cancelled formations, whose coordinates are never touched.  Returns
    *formation* itself when nothing changes.
    """
    if not is_virtual_code(formation.extended_code):
        return formation

    location = formation.location
    update: dict = {}
    if location.address != VIRTUAL_FORMATION_ADDRESS:
        update["address"] = VIRTUAL_FORMATION_ADDRESS
    if not formation.is_cancelled and location.coordinates is not None:
        update["coordinates"] = None

    if not update:
        return formation
    return formation.model_copy(update={"location": location.model_copy(update=update)})
