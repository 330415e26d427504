"""carve protocol constants.

Single source of truth for the derivation inputs and host limits.
Keep this file stable. Every handle ever issued depends on these bytes.
"""
from __future__ import annotations

from dataclasses import dataclass

# Init code run by the host: return everything after the first 11 bytes.
#   PUSH1 0x0b | CODESIZE | SUB | DUP1 | PUSH1 0x0b | RETURNDATASIZE | CODECOPY
#   RETURNDATASIZE | RETURN
BOOTSTRAP_PREFIX = bytes.fromhex("600b380380600b3d393df3")
BOOTSTRAP_PREFIX_LEN = 11

# CREATE2 derivation: keccak256(0xff | deployer(20) | salt(32) | keccak256(init))[12:]
CREATE2_MARKER = b"\xff"
ZERO_SALT = bytes(32)
HANDLE_LEN = 20
SALT_LEN = 32
ZERO_HANDLE = bytes(HANDLE_LEN)

# Host platform limits (EIP-3541 reserved byte, EIP-170 code size)
DEFAULT_FORBIDDEN_FIRST_BYTE = 0xEF
DEFAULT_MAX_CODE_SIZE = 24576


@dataclass(frozen=True)
class HostRules:
    """Limits imposed by the host on stored artifacts."""

    forbidden_first_byte: int = DEFAULT_FORBIDDEN_FIRST_BYTE
    max_code_size: int = DEFAULT_MAX_CODE_SIZE

    def violation(self, code: bytes) -> str | None:
        """Return a reason string if ``code`` cannot be stored, else None."""
        if code and code[0] == self.forbidden_first_byte:
            return f"first byte 0x{self.forbidden_first_byte:02x} is reserved"
        if len(code) > self.max_code_size:
            return f"code size {len(code)} exceeds limit {self.max_code_size}"
        return None
