"""carve ledger - External create-once placement collaborator."""
from .initcode import InitCodeError, run_initcode
from .ledger import (
    CollisionError,
    DirectoryLedger,
    Ledger,
    LedgerError,
    LedgerTransaction,
    MemoryLedger,
    PlacementError,
)

__all__ = [
    "InitCodeError",
    "run_initcode",
    "CollisionError",
    "DirectoryLedger",
    "Ledger",
    "LedgerError",
    "LedgerTransaction",
    "MemoryLedger",
    "PlacementError",
]
