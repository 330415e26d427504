"""Create-once artifact ledgers.

A ledger owns every stored artifact. Writes happen inside a transaction:
placements are staged, checked by the caller, and committed together when the
transaction exits cleanly. An exception inside the block discards the stage,
so a failed deployment never leaves a partial artifact behind.
"""
from __future__ import annotations

import os
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
from warnings import warn

from carve_core.ids import create2_address
from carve_core.protocol import HANDLE_LEN, HostRules

from .initcode import InitCodeError, run_initcode


class LedgerError(Exception):
    """Base class for placement refusals."""


class CollisionError(LedgerError):
    """The target handle is already occupied."""


class PlacementError(LedgerError):
    """The host refused to store the produced artifact."""


class LedgerTransaction:
    """Staged view of a ledger: committed state plus pending placements."""

    def __init__(self, ledger: "Ledger"):
        self.ledger = ledger
        self.staged: dict[bytes, bytes] = {}

    def place(self, caller: bytes, init_code: bytes, salt: bytes) -> bytes:
        handle = create2_address(caller, salt, init_code)
        if handle in self.staged or self.ledger.occupied(handle):
            raise CollisionError(f"handle 0x{handle.hex()} is occupied")

        try:
            code = run_initcode(init_code)
        except InitCodeError as e:
            raise PlacementError(f"init code failed: {e}") from e

        reason = self.ledger.rules.violation(code)
        if reason is not None:
            raise PlacementError(reason)

        self.staged[handle] = code
        return handle

    def size_of(self, handle: bytes) -> int:
        return len(self.read_code(handle))

    def read_code(self, handle: bytes) -> bytes:
        if handle in self.staged:
            return self.staged[handle]
        return self.ledger.read_code(handle)


class Ledger(ABC):
    """External placement collaborator."""

    transaction_class = LedgerTransaction

    def __init__(self, rules: HostRules | None = None):
        self.rules = rules or HostRules()

    @abstractmethod
    def read_code(self, handle: bytes) -> bytes:
        """Committed bytes at ``handle``; empty if unoccupied."""

    @abstractmethod
    def occupied(self, handle: bytes) -> bool:
        """True once anything (even empty code) has been committed at ``handle``."""

    @abstractmethod
    def handles(self) -> Iterator[bytes]:
        """Committed handles, in no particular order."""

    @abstractmethod
    def _commit(self, staged: dict[bytes, bytes]) -> None:
        """Store every staged artifact or none of them; raise CollisionError on a lost race."""

    def size_of(self, handle: bytes) -> int:
        return len(self.read_code(handle))

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        tx = self.transaction_class(self)
        yield tx
        if tx.staged:
            self._commit(tx.staged)


class MemoryLedger(Ledger):
    """In-process ledger. Commits are serialised by a lock; reads are lock-free."""

    def __init__(self, rules: HostRules | None = None):
        super().__init__(rules)
        self._store: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def read_code(self, handle: bytes) -> bytes:
        return self._store.get(bytes(handle), b"")

    def occupied(self, handle: bytes) -> bool:
        return bytes(handle) in self._store

    def handles(self) -> Iterator[bytes]:
        return iter(list(self._store))

    def _commit(self, staged: dict[bytes, bytes]) -> None:
        with self._lock:
            for handle in staged:
                if handle in self._store:
                    raise CollisionError(f"handle 0x{handle.hex()} was placed concurrently")
            self._store.update(staged)


class DirectoryLedger(Ledger):
    """Ledger persisted as one file per artifact under ``<root>/code``.

    Commits hard-link a fully written staging file into place. ``os.link``
    fails if the target exists, which makes it the create-once serialisation
    point across threads and processes alike. Directories are created on the
    first commit, so read-only use never writes to disk.
    """

    def __init__(self, root: Path, rules: HostRules | None = None):
        super().__init__(rules)
        self.root = Path(root)
        self.code_dir = self.root / "code"
        self.staging_dir = self.root / "staging"
        stale = list(self.staging_dir.iterdir()) if self.staging_dir.is_dir() else []
        if stale:
            warn(f"{len(stale)} stale staging file(s) in {self.staging_dir}; never committed")

    def path_for(self, handle: bytes) -> Path:
        if len(handle) != HANDLE_LEN:
            raise ValueError(f"handle must be {HANDLE_LEN} bytes, got {len(handle)}")
        return self.code_dir / f"{bytes(handle).hex()}.bin"

    def read_code(self, handle: bytes) -> bytes:
        try:
            return self.path_for(handle).read_bytes()
        except FileNotFoundError:
            return b""

    def size_of(self, handle: bytes) -> int:
        try:
            return self.path_for(handle).stat().st_size
        except FileNotFoundError:
            return 0

    def occupied(self, handle: bytes) -> bool:
        return self.path_for(handle).exists()

    def handles(self) -> Iterator[bytes]:
        for p in sorted(self.code_dir.glob("*.bin")):
            yield bytes.fromhex(p.stem)

    def _commit(self, staged: dict[bytes, bytes]) -> None:
        self.code_dir.mkdir(parents=True, exist_ok=True)
        self.staging_dir.mkdir(parents=True, exist_ok=True)

        written: list[tuple[Path, Path]] = []
        try:
            for handle, code in staged.items():
                tmp = self.staging_dir / f"{handle.hex()}.{uuid.uuid4().hex}.tmp"
                written.append((tmp, self.path_for(handle)))
                with open(tmp, "wb") as f:
                    f.write(code)
                    f.flush()
                    os.fsync(f.fileno())

            linked: list[Path] = []
            for tmp, final in written:
                try:
                    os.link(tmp, final)
                except OSError as e:
                    # All or nothing: undo links made earlier in this commit.
                    for done in linked:
                        done.unlink(missing_ok=True)
                    if isinstance(e, FileExistsError):
                        raise CollisionError(f"handle 0x{final.stem} was placed concurrently") from e
                    raise
                linked.append(final)
        finally:
            for tmp, _ in written:
                tmp.unlink(missing_ok=True)
