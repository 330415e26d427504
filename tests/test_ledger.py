import os

import pytest

from carve_core.ids import bootstrap, create2_address
from carve_core.protocol import ZERO_SALT, HostRules
from carve_ledger.ledger import (
    CollisionError,
    DirectoryLedger,
    MemoryLedger,
    PlacementError,
)

CALLER = bytes.fromhex("00" * 19 + "01")
CODE = bytes(range(1, 33))


@pytest.fixture(params=["memory", "directory"])
def ledger(request, tmp_path):
    if request.param == "memory":
        return MemoryLedger()
    return DirectoryLedger(tmp_path / "ledger")


def test_unoccupied_reads_empty(ledger):
    h = create2_address(CALLER, ZERO_SALT, bootstrap(CODE))
    assert ledger.size_of(h) == 0
    assert ledger.read_code(h) == b""
    assert not ledger.occupied(h)
    assert list(ledger.handles()) == []


def test_place_commits_runtime_bytes(ledger):
    with ledger.transaction() as tx:
        h = tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
        assert tx.read_code(h) == CODE
        # Not visible to plain readers until commit.
        assert ledger.read_code(h) == b""

    assert h == create2_address(CALLER, ZERO_SALT, bootstrap(CODE))
    assert ledger.read_code(h) == CODE
    assert ledger.size_of(h) == len(CODE)
    assert list(ledger.handles()) == [h]


def test_exception_discards_stage(ledger):
    with pytest.raises(RuntimeError):
        with ledger.transaction() as tx:
            h = tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
            raise RuntimeError("abort")

    assert ledger.size_of(h) == 0
    assert list(ledger.handles()) == []


def test_occupied_handle_is_refused(ledger):
    with ledger.transaction() as tx:
        h = tx.place(CALLER, bootstrap(CODE), ZERO_SALT)

    with pytest.raises(CollisionError):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
    assert ledger.read_code(h) == CODE


def test_same_handle_twice_in_one_transaction(ledger):
    with pytest.raises(CollisionError):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
            tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
    assert list(ledger.handles()) == []


def test_lost_race_at_commit(ledger):
    # Both transactions stage the same handle; the inner one commits first.
    with pytest.raises(CollisionError):
        with ledger.transaction() as outer:
            outer.place(CALLER, bootstrap(CODE), ZERO_SALT)
            with ledger.transaction() as inner:
                h = inner.place(CALLER, bootstrap(CODE), ZERO_SALT)
    assert ledger.read_code(h) == CODE
    assert list(ledger.handles()) == [h]


def test_host_rules_refuse_reserved_first_byte(ledger):
    with pytest.raises(PlacementError, match="reserved"):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(b"\xef\x00"), ZERO_SALT)
    assert list(ledger.handles()) == []


def test_host_rules_refuse_oversized_code():
    ledger = MemoryLedger(HostRules(max_code_size=16))
    with pytest.raises(PlacementError, match="exceeds"):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(CODE), ZERO_SALT)


def test_failing_init_code_is_refused(ledger):
    with pytest.raises(PlacementError, match="init code failed"):
        with ledger.transaction() as tx:
            tx.place(CALLER, b"\x60\x00\x60\x00\xfd", ZERO_SALT)


def test_empty_result_still_occupies_handle(ledger):
    with ledger.transaction() as tx:
        h = tx.place(CALLER, bootstrap(b""), ZERO_SALT)
    assert ledger.occupied(h)
    assert ledger.size_of(h) == 0
    with pytest.raises(CollisionError):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(b""), ZERO_SALT)


def test_directory_ledger_persists_across_instances(tmp_path):
    root = tmp_path / "ledger"
    with DirectoryLedger(root).transaction() as tx:
        h = tx.place(CALLER, bootstrap(CODE), ZERO_SALT)

    reopened = DirectoryLedger(root)
    assert reopened.read_code(h) == CODE
    assert (root / "code" / f"{h.hex()}.bin").exists()
    assert list((root / "staging").iterdir()) == []


def test_directory_ledger_warns_on_stale_staging(tmp_path):
    root = tmp_path / "ledger"
    (root / "staging").mkdir(parents=True)
    (root / "staging" / "leftover.tmp").write_bytes(b"\x00")
    with pytest.warns(UserWarning, match="stale staging"):
        DirectoryLedger(root)


def test_directory_ledger_rejects_malformed_handle(tmp_path):
    with pytest.raises(ValueError):
        DirectoryLedger(tmp_path / "ledger").read_code(b"\x00" * 3)


def test_directory_ledger_reads_do_not_create_directories(tmp_path):
    root = tmp_path / "existing"
    root.mkdir()
    ledger = DirectoryLedger(root)
    h = create2_address(CALLER, ZERO_SALT, bootstrap(CODE))
    assert ledger.read_code(h) == b""
    assert ledger.size_of(h) == 0
    assert not ledger.occupied(h)
    assert list(ledger.handles()) == []
    assert list(root.iterdir()) == []


def test_directory_ledger_undoes_partial_commit_on_link_error(tmp_path, monkeypatch):
    ledger = DirectoryLedger(tmp_path / "ledger")
    real_link = os.link
    calls = []

    def flaky_link(src, dst):
        calls.append(dst)
        if len(calls) == 2:
            raise PermissionError("link refused")
        real_link(src, dst)

    monkeypatch.setattr(os, "link", flaky_link)
    with pytest.raises(PermissionError):
        with ledger.transaction() as tx:
            tx.place(CALLER, bootstrap(CODE), ZERO_SALT)
            tx.place(CALLER, bootstrap(CODE + b"\x00"), ZERO_SALT)

    assert len(calls) == 2
    assert list(ledger.handles()) == []
    assert list(ledger.staging_dir.iterdir()) == []
