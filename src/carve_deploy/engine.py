"""Content-addressed deployment engine."""
from __future__ import annotations

from carve_core.ids import address_of, bootstrap
from carve_core.protocol import HANDLE_LEN, ZERO_HANDLE, ZERO_SALT, HostRules
from carve_ledger.ledger import Ledger, LedgerError
from carve_verify.integrity import is_carved


class DeploymentFailed(Exception):
    """Raised for every carve failure: bad input, collision, or a size anomaly."""


class CarveEngine:
    """Places runtime code at handles derived only from its bytes.

    The engine keeps no mutable state. The ledger owns every artifact, and the
    engine identity is fixed at construction.
    """

    def __init__(self, ledger: Ledger, engine_identity: bytes, rules: HostRules | None = None):
        if len(engine_identity) != HANDLE_LEN:
            raise ValueError(f"engine identity must be {HANDLE_LEN} bytes, got {len(engine_identity)}")
        self.ledger = ledger
        self.identity = bytes(engine_identity)
        self.rules = rules or ledger.rules

    def address_of(self, runtime_code: bytes) -> bytes:
        return address_of(self.identity, runtime_code)

    def is_carved(self, handle: bytes) -> bool:
        return is_carved(self.ledger, self.identity, handle)

    def carve(self, runtime_code: bytes) -> bytes:
        """Store ``runtime_code`` and return its handle.

        Either the artifact is committed and every check passed, or the ledger
        is left exactly as it was and DeploymentFailed is raised. Carving the
        same bytes twice always fails on the second attempt.
        """
        code = bytes(runtime_code)
        if not code:
            raise DeploymentFailed("runtime code is empty")
        if code[0] == self.rules.forbidden_first_byte:
            raise DeploymentFailed(f"runtime code starts with reserved byte 0x{code[0]:02x}")
        if len(code) > self.rules.max_code_size:
            raise DeploymentFailed(f"runtime code size {len(code)} exceeds limit {self.rules.max_code_size}")

        try:
            with self.ledger.transaction() as tx:
                handle = tx.place(self.identity, bootstrap(code), ZERO_SALT)
                if handle == ZERO_HANDLE:
                    raise DeploymentFailed("placement returned the zero handle")
                size = tx.size_of(handle)
                if size == 0:
                    raise DeploymentFailed("nothing stored at placed handle")
                if size != len(code):
                    raise DeploymentFailed(f"stored size {size} != runtime code size {len(code)}")
        except LedgerError as e:
            raise DeploymentFailed(str(e)) from e
        return handle
