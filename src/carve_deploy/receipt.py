"""Signed deployment receipts."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from carve_core.ids import bootstrap, keccak256, to_hex
from carve_core.protocol import BOOTSTRAP_PREFIX, ZERO_SALT
from carve_verify.crypto import public_key_ed25519, sign_ed25519

# Deterministic demo publisher key.
# This must match governance/trust_store.json so `carve-verify receipt` can
# validate receipts out-of-the-box. In production, load from HSM/Vault.
CANONICAL_PUBLISHER_SEED = bytes.fromhex(
    "a665a45920422f9d417e4867efdc4fb8a04a1f3fff1fa07e998e86f7f7a27ae3"
)

# Fixed timestamp for reproducible gold receipts
GOLD_TIMESTAMP = "2026-01-01T00:00:00Z"

RECEIPT_SCHEMA = "carve-receipt-v1"


def build_receipt(engine_identity: bytes, handle: bytes, code: bytes, pubkey: bytes, timestamp: str) -> dict:
    return {
        "schema": RECEIPT_SCHEMA,
        "created": timestamp,
        "engine": to_hex(engine_identity),
        "handle": to_hex(handle),
        "code_size": len(code),
        "code_hash": to_hex(keccak256(code)),
        "derivation": {
            "algorithm": "keccak256-create2",
            "prefix": to_hex(BOOTSTRAP_PREFIX),
            "salt": to_hex(ZERO_SALT),
            "init_code_hash": to_hex(keccak256(bootstrap(code))),
        },
        "publisher": {"pubkey": pubkey.hex()},
    }


def write_receipt(
    out_path: Path,
    engine_identity: bytes,
    handle: bytes,
    code: bytes,
    signing_key: bytes | None = None,
    timestamp: str | None = None,
) -> dict:
    """Write receipt.json plus its ed25519 signature and public key under ``out_path``."""
    seed = CANONICAL_PUBLISHER_SEED if signing_key is None else signing_key
    if timestamp is None:
        timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

    pub = public_key_ed25519(seed)
    receipt = build_receipt(engine_identity, handle, code, pub, timestamp)

    body = json.dumps(receipt, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    sig, _ = sign_ed25519(seed, body)

    out_path = Path(out_path)
    (out_path / "sig").mkdir(parents=True, exist_ok=True)
    (out_path / "receipt.json").write_bytes(body)
    (out_path / "sig" / "receipt.sig").write_bytes(sig)
    (out_path / "sig" / "publisher.pub").write_bytes(pub)
    return receipt
