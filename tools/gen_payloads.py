import json
import random
from pathlib import Path

# Fixed runtime payloads with known shapes.
#   scenario_a: PUSH1 42 PUSH1 0 MSTORE PUSH1 32 PUSH1 0 RETURN (returns 42)
#   scenario_b: 32 bytes 0x01..0x20
#   scenario_c: scenario_b twice
SCENARIO_A = bytes([0x60, 0x2A, 0x60, 0x00, 0x52, 0x60, 0x20, 0x60, 0x00, 0xF3])
SCENARIO_B = bytes(range(1, 33))
SCENARIO_C = SCENARIO_B + SCENARIO_B

RESERVED_FIRST_BYTE = 0xEF


def random_payload(rng: random.Random, max_len: int = 256) -> bytes:
    """Random carvable runtime code: non-empty and not starting with the reserved byte."""
    n = rng.randint(1, max_len)
    b = bytearray(rng.getrandbits(8) for _ in range(n))
    if b[0] == RESERVED_FIRST_BYTE:
        b[0] = 0x00
    return bytes(b)


def generate_payloads(output_dir: str, runs: int = 0, seed: int | None = None) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    rng = random.Random(seed)

    payloads = {
        "scenario_a.bin": SCENARIO_A,
        "scenario_b.bin": SCENARIO_B,
        "scenario_c.bin": SCENARIO_C,
    }
    for i in range(runs):
        payloads[f"random_{i:03d}.bin"] = random_payload(rng)

    index = {}
    for name, data in payloads.items():
        (out / name).write_bytes(data)
        index[name] = {"size": len(data), "hex": "0x" + data.hex()}

    (out / "index.json").write_text(json.dumps(index, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    print(f"GENERATED: {out} ({len(payloads)} payloads)")
    return out


if __name__ == "__main__":
    import sys

    # Usage:
    #   python tools/gen_payloads.py OUT_DIR [--runs N] [--seed S]

    args = [a for a in sys.argv[1:] if a]

    def pop_value(arg_list: list[str], flag: str) -> tuple[str | None, list[str]]:
        """Remove ``flag VALUE`` from an argv-style list."""
        if flag not in arg_list:
            return None, arg_list
        i = arg_list.index(flag)
        if i + 1 >= len(arg_list):
            raise SystemExit(f"{flag} requires a value")
        return arg_list[i + 1], arg_list[:i] + arg_list[i + 2:]

    runs, args = pop_value(args, "--runs")
    seed, args = pop_value(args, "--seed")

    out = args[0] if len(args) > 0 else "payloads"
    generate_payloads(out, runs=int(runs or 0), seed=int(seed) if seed is not None else None)
