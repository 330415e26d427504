import json
from pathlib import Path

from carve_core.ids import create2_address_from_hash, keccak256, parse_handle
from carve_core.protocol import ZERO_SALT
from carve_ledger.ledger import Ledger

from .const import ERRORS
from .crypto import verify_ed25519
from .integrity import is_carved

CANONICAL_JSON_KW = {"sort_keys": True, "separators": (",", ":"), "ensure_ascii": False}


def _load_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def _canonical_json_bytes(obj) -> bytes:
    return json.dumps(obj, **CANONICAL_JSON_KW).encode("utf-8")


def _fail(code: str, **detail) -> dict:
    err = {"code": code, "message": ERRORS[code], **detail}
    return {"status": "FAIL", "error_count": 1, "errors": [err]}


def _pass() -> dict:
    return {"status": "PASS", "error_count": 0, "errors": []}


def verify_handle(ledger: Ledger, engine_identity: bytes, handle: bytes) -> dict:
    """Audit a single handle: something must be stored, and it must derive to the handle."""
    size = ledger.size_of(handle)
    if size == 0:
        return _fail("E_EMPTY_ARTIFACT", handle="0x" + handle.hex())
    if not is_carved(ledger, engine_identity, handle):
        return _fail("E_NOT_CARVED", handle="0x" + handle.hex(), code_size=size)
    return _pass()


def _find_trust_root(receipt_dir: Path) -> Path:
    cur = receipt_dir.resolve()
    # Walk upward looking for a repo marker.
    for p in (cur,) + tuple(cur.parents):
        if (p / "governance" / "trust_store.json").exists() or (p / "pyproject.toml").exists():
            return p
    return cur


def verify_receipt(receipt_dir: Path, ledger: Ledger, trust_root: Path | None = None) -> dict:
    """Check a signed deployment receipt against the ledger it claims to describe."""
    if trust_root is None:
        trust_root = _find_trust_root(receipt_dir)

    receipt_path = receipt_dir / "receipt.json"
    sig_path = receipt_dir / "sig" / "receipt.sig"
    pub_path = receipt_dir / "sig" / "publisher.pub"
    gov_trust = trust_root / "governance" / "trust_store.json"

    for p in [receipt_path, sig_path, pub_path]:
        if not p.exists():
            return _fail("E_LAYOUT_MISSING", path=str(p))

    try:
        receipt = _load_json(receipt_path)
        engine = parse_handle(receipt["engine"])
        handle = parse_handle(receipt["handle"])
        code_hash = receipt["code_hash"]
        init_code_hash = bytes.fromhex(receipt["derivation"]["init_code_hash"].removeprefix("0x"))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        return _fail("E_RECEIPT_JSON", detail=str(e))

    pub = pub_path.read_bytes()
    sig = sig_path.read_bytes()
    if not verify_ed25519(pub, _canonical_json_bytes(receipt), sig):
        return _fail("E_SIG_INVALID")

    try:
        derived = create2_address_from_hash(engine, ZERO_SALT, init_code_hash)
    except ValueError as e:
        return _fail("E_RECEIPT_JSON", detail=str(e))
    if derived != handle:
        return _fail("E_HANDLE_MISMATCH", expected=receipt["handle"], computed="0x" + derived.hex())

    stored = ledger.read_code(handle)
    if not stored:
        return _fail("E_EMPTY_ARTIFACT", handle=receipt["handle"])
    computed_hash = "0x" + keccak256(stored).hex()
    if computed_hash != code_hash:
        return _fail("E_CODE_HASH", expected=code_hash, computed=computed_hash)
    if not is_carved(ledger, engine, handle):
        return _fail("E_NOT_CARVED", handle=receipt["handle"])

    trust = _load_json(gov_trust) if gov_trust.exists() else {"trusted_publishers": []}
    trusted = set([x.lower() for x in trust.get("trusted_publishers", [])])
    pub_hex = pub.hex().lower()
    if pub_hex not in trusted:
        return _fail("E_POLICY_TRUST", publisher_pub=pub_hex)

    return _pass()
