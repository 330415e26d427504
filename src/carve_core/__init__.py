"""carve core - Shared identity derivation and protocol constants."""
from .ids import (
    address_of,
    anchored_identity,
    bootstrap,
    create2_address,
    create2_address_from_hash,
    keccak256,
    parse_handle,
    to_hex,
)
from .protocol import BOOTSTRAP_PREFIX, ZERO_SALT, HostRules

__all__ = [
    "address_of",
    "anchored_identity",
    "bootstrap",
    "create2_address",
    "create2_address_from_hash",
    "keccak256",
    "parse_handle",
    "to_hex",
    "BOOTSTRAP_PREFIX",
    "ZERO_SALT",
    "HostRules",
]
