from __future__ import annotations

from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from carve_core.ids import keccak256, to_hex
from carve_ledger.ledger import Ledger
from carve_verify.integrity import is_carved

ARTIFACT_SCHEMA = pa.schema(
    [
        ("handle", pa.string()),
        ("code_size", pa.int32()),
        ("code_hash", pa.string()),
        ("carved", pa.bool_()),
    ]
)


def export_ledger(ledger: Ledger, engine_identity: bytes, out_path: Path) -> int:
    """Write artifacts.parquet describing every committed artifact. Returns the row count."""
    rows: list[dict] = []
    for handle in ledger.handles():
        code = ledger.read_code(handle)
        rows.append(
            {
                "handle": to_hex(handle),
                "code_size": len(code),
                "code_hash": to_hex(keccak256(code)),
                "carved": is_carved(ledger, engine_identity, handle),
            }
        )

    if not rows:
        return 0

    out_path = Path(out_path)
    out_path.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows).sort_values("handle")
    table = pa.Table.from_pandas(df, schema=ARTIFACT_SCHEMA, preserve_index=False)
    pq.write_table(table, out_path / "artifacts.parquet")
    return len(rows)
