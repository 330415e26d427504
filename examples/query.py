"""Query a ledger export - list artifacts and flag any that fail re-derivation."""
from __future__ import annotations

import sys
from pathlib import Path

import duckdb


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python query.py <export_dir> [min_size]")
        print("Example: python query.py export/ 32")
        sys.exit(1)

    export = Path(sys.argv[1])
    min_size = int(sys.argv[2]) if len(sys.argv) > 2 else 0

    con = duckdb.connect(":memory:")
    con.execute(f"CREATE VIEW artifacts AS SELECT * FROM '{export}/artifacts.parquet'")

    sql = """
    SELECT handle, code_size, code_hash, carved
    FROM artifacts
    WHERE code_size >= ?
    ORDER BY code_size DESC, handle
    """

    print(f"--- Artifacts (size >= {min_size}) ---\n")

    df = con.execute(sql, [min_size]).fetchdf()
    if df.empty:
        print("No artifacts found.")
        return

    for _, row in df.iterrows():
        flag = "OK" if row["carved"] else "TAMPERED"
        print(f"{row['handle']}  {row['code_size']:>6} bytes  {flag}")
        print(f"  keccak: {row['code_hash']}")

    bad = int((~df["carved"]).sum())
    print(f"\n{len(df)} artifact(s), {bad} failing re-derivation")


if __name__ == "__main__":
    main()
