"""carve - Deterministic Identity Functions."""
from __future__ import annotations

from Crypto.Hash import keccak

from .protocol import (
    BOOTSTRAP_PREFIX,
    CREATE2_MARKER,
    HANDLE_LEN,
    SALT_LEN,
    ZERO_SALT,
)


def keccak256(data: bytes) -> bytes:
    """Compute the 32-byte keccak-256 digest (pre-standard SHA-3 padding)."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def bootstrap(runtime_code: bytes) -> bytes:
    """Prepend the bootstrap prefix to runtime code."""
    return BOOTSTRAP_PREFIX + bytes(runtime_code)


def create2_address_from_hash(deployer: bytes, salt: bytes, init_code_hash: bytes) -> bytes:
    """Derive a handle from the keccak-256 of the init code instead of the code."""
    if len(deployer) != HANDLE_LEN:
        raise ValueError(f"deployer must be {HANDLE_LEN} bytes, got {len(deployer)}")
    if len(salt) != SALT_LEN:
        raise ValueError(f"salt must be {SALT_LEN} bytes, got {len(salt)}")
    if len(init_code_hash) != 32:
        raise ValueError(f"init code hash must be 32 bytes, got {len(init_code_hash)}")
    buf = CREATE2_MARKER + bytes(deployer) + bytes(salt) + bytes(init_code_hash)
    return keccak256(buf)[-HANDLE_LEN:]


def create2_address(deployer: bytes, salt: bytes, init_code: bytes) -> bytes:
    """Derive the 20-byte handle a deployer places ``init_code`` at under ``salt``."""
    return create2_address_from_hash(deployer, salt, keccak256(init_code))


def address_of(engine_identity: bytes, runtime_code: bytes) -> bytes:
    """Generate the deterministic handle of ``runtime_code`` under an engine.

    Defined for every length, including empty code, whether or not the code
    could actually be carved.
    """
    return create2_address(engine_identity, ZERO_SALT, bootstrap(runtime_code))


def anchored_identity(factory: bytes, factory_salt: bytes, engine_init_code: bytes) -> bytes:
    """Engine identity when the engine itself is placed by a deterministic factory."""
    return create2_address(factory, factory_salt, engine_init_code)


def to_hex(handle: bytes) -> str:
    return "0x" + bytes(handle).hex()


def parse_handle(text: str) -> bytes:
    """Parse a 0x-prefixed (or bare) hex handle of exactly 20 bytes."""
    t = text.strip()
    if t[:2].lower() == "0x":
        t = t[2:]
    try:
        raw = bytes.fromhex(t)
    except ValueError:
        raise ValueError(f"handle is not hex: {text!r}") from None
    if len(raw) != HANDLE_LEN:
        raise ValueError(f"handle must be {HANDLE_LEN} bytes, got {len(raw)}")
    return raw
