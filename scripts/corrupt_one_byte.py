import sys
from pathlib import Path

def main():
    if len(sys.argv) != 3:
        print("Usage: corrupt_one_byte.py <ledger_dir> <handle>")
        raise SystemExit(2)

    ledger = Path(sys.argv[1])
    handle = sys.argv[2].lower().removeprefix("0x")
    p = ledger / "code" / f"{handle}.bin"
    if not p.exists():
        print(f"No artifact stored at 0x{handle}.")
        raise SystemExit(2)

    b = bytearray(p.read_bytes())
    if not b:
        print("Artifact is empty; nothing to corrupt.")
        raise SystemExit(2)

    # Flip the lowest bit of the last byte. The stored code no longer
    # derives to its handle, so carve-verify must report E_NOT_CARVED.
    idx = len(b) - 1
    b[idx] ^= 0x01
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} in {p}")

if __name__ == "__main__":
    main()
