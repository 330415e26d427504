import random
import threading

import pytest

from carve_core.ids import address_of
from carve_core.protocol import HostRules
from carve_deploy.engine import CarveEngine, DeploymentFailed
from carve_ledger.ledger import DirectoryLedger, LedgerTransaction, MemoryLedger

ENGINE = bytes.fromhex("5fbdb2315678afecb367f032d93f642f64180aa3")

SCENARIO_A = bytes([0x60, 0x2A, 0x60, 0x00, 0x52, 0x60, 0x20, 0x60, 0x00, 0xF3])
SCENARIO_B = bytes(range(1, 33))
SCENARIO_C = SCENARIO_B + SCENARIO_B


@pytest.fixture(params=["memory", "directory"])
def engine(request, tmp_path):
    if request.param == "memory":
        ledger = MemoryLedger()
    else:
        ledger = DirectoryLedger(tmp_path / "ledger")
    return CarveEngine(ledger, ENGINE)


def random_codes(n: int, seed: int = 7) -> list[bytes]:
    rng = random.Random(seed)
    out = []
    for _ in range(n):
        b = bytearray(rng.getrandbits(8) for _ in range(rng.randint(1, 300)))
        if b[0] == 0xEF:
            b[0] = 0x00
        out.append(bytes(b))
    return out


@pytest.mark.parametrize("code", [SCENARIO_A, SCENARIO_B, SCENARIO_C], ids=["A", "B", "C"])
def test_scenarios(engine, code):
    predicted = engine.address_of(code)
    assert not engine.is_carved(predicted)

    handle = engine.carve(code)

    assert handle == predicted
    assert engine.address_of(code) == predicted
    assert engine.ledger.read_code(handle) == code
    assert engine.ledger.size_of(handle) == len(code)
    assert engine.is_carved(handle)

    with pytest.raises(DeploymentFailed):
        engine.carve(code)
    assert engine.ledger.read_code(handle) == code


def test_carve_matches_prediction_for_random_payloads(engine):
    for code in random_codes(25):
        before = address_of(ENGINE, code)
        assert engine.carve(code) == before
        assert engine.address_of(code) == before
        assert engine.ledger.read_code(before) == code


def test_empty_code_is_refused(engine):
    with pytest.raises(DeploymentFailed, match="empty"):
        engine.carve(b"")
    assert list(engine.ledger.handles()) == []
    # Prediction is still defined for empty input.
    assert len(engine.address_of(b"")) == 20


@pytest.mark.parametrize("tail", [b"", b"\x00", SCENARIO_B])
def test_reserved_first_byte_is_refused(engine, tail):
    with pytest.raises(DeploymentFailed, match="reserved"):
        engine.carve(b"\xef" + tail)
    assert list(engine.ledger.handles()) == []


def test_injected_rules_are_honoured():
    ledger = MemoryLedger(HostRules(forbidden_first_byte=0x00, max_code_size=8))
    engine = CarveEngine(ledger, ENGINE)
    with pytest.raises(DeploymentFailed, match="reserved"):
        engine.carve(b"\x00\x01")
    with pytest.raises(DeploymentFailed, match="exceeds"):
        engine.carve(SCENARIO_B)
    # 0xEF is an ordinary byte under these rules.
    assert engine.carve(b"\xef\x01") == address_of(ENGINE, b"\xef\x01")


def test_engine_identity_must_be_20_bytes():
    with pytest.raises(ValueError):
        CarveEngine(MemoryLedger(), b"\x01" * 19)


class _TruncatingTransaction(LedgerTransaction):
    def place(self, caller, init_code, salt):
        handle = super().place(caller, init_code, salt)
        self.staged[handle] = self.staged[handle][:-1]
        return handle


class TruncatingLedger(MemoryLedger):
    """A faulty host that stores one byte less than it was asked to."""

    transaction_class = _TruncatingTransaction


def test_size_anomaly_rolls_back_commit():
    engine = CarveEngine(TruncatingLedger(), ENGINE)
    with pytest.raises(DeploymentFailed, match="stored size"):
        engine.carve(SCENARIO_B)
    assert list(engine.ledger.handles()) == []
    assert engine.ledger.size_of(engine.address_of(SCENARIO_B)) == 0


def test_failure_is_chained_to_ledger_cause(engine):
    engine.carve(SCENARIO_A)
    with pytest.raises(DeploymentFailed) as ei:
        engine.carve(SCENARIO_A)
    assert ei.value.__cause__ is not None


def test_concurrent_carves_have_one_winner():
    engine = CarveEngine(MemoryLedger(), ENGINE)
    n = 8
    barrier = threading.Barrier(n)
    results: list[object] = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            out = engine.carve(SCENARIO_C)
        except DeploymentFailed as e:
            out = e
        with lock:
            results.append(out)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    wins = [r for r in results if isinstance(r, bytes)]
    assert len(wins) == 1
    assert wins[0] == address_of(ENGINE, SCENARIO_C)
    assert sum(isinstance(r, DeploymentFailed) for r in results) == n - 1
    assert engine.ledger.read_code(wins[0]) == SCENARIO_C


def test_engines_are_isolated_by_identity():
    ledger = MemoryLedger()
    a = CarveEngine(ledger, ENGINE)
    b = CarveEngine(ledger, bytes(19) + b"\x02")
    ha = a.carve(SCENARIO_A)
    hb = b.carve(SCENARIO_A)
    assert ha != hb
    assert a.is_carved(ha) and b.is_carved(hb)
    assert not a.is_carved(hb)
