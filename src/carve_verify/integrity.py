"""Integrity predicate: does the artifact at a handle derive to that handle?"""
from __future__ import annotations

from carve_core.ids import address_of
from carve_core.protocol import HANDLE_LEN
from carve_ledger.ledger import Ledger


def is_carved(ledger: Ledger, engine_identity: bytes, handle: bytes) -> bool:
    """True iff the bytes stored at ``handle`` re-derive to ``handle``.

    An unoccupied handle is read as empty code, so the handle derived from
    empty code verifies even though it can never be carved.
    """
    if len(handle) != HANDLE_LEN:
        return False
    observed = ledger.read_code(handle)
    return address_of(engine_identity, observed) == bytes(handle)
