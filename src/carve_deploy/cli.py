"""carve - Content-addressed deployment CLI."""
from __future__ import annotations

import json
from pathlib import Path

import click

from carve_core.ids import address_of, anchored_identity, parse_handle, to_hex
from carve_core.protocol import DEFAULT_FORBIDDEN_FIRST_BYTE, DEFAULT_MAX_CODE_SIZE, SALT_LEN, HostRules
from carve_ledger.ledger import DirectoryLedger
from carve_verify.crypto import public_key_ed25519

from carve_deploy.engine import CarveEngine
from carve_deploy.export import export_ledger
from carve_deploy.receipt import CANONICAL_PUBLISHER_SEED, GOLD_TIMESTAMP, write_receipt


def read_code(source: str, as_hex: bool) -> bytes:
    """Runtime code from a hex literal or a binary file."""
    if as_hex:
        t = source.strip()
        return bytes.fromhex(t[2:] if t[:2].lower() == "0x" else t)
    return Path(source).read_bytes()


class ReceiptNotWritten(Exception):
    """The artifact was carved but its receipt could not be written."""

    def __init__(self, handle: bytes, cause: Exception):
        super().__init__(f"Carved at {to_hex(handle)}; receipt not written: {cause}")
        self.handle = handle


def deploy_code(
    ledger_dir: Path,
    engine_identity: bytes,
    code: bytes,
    rules: HostRules,
    receipt_dir: Path | None = None,
    signing_key: bytes | None = None,
    timestamp: str | None = None,
) -> bytes:
    """Carve ``code`` into a directory ledger and optionally write a signed receipt."""
    print(f"Carving {len(code)} bytes into ledger: {ledger_dir}")

    engine = CarveEngine(DirectoryLedger(ledger_dir, rules), engine_identity, rules)
    predicted = engine.address_of(code)
    print(f"  Predicted: {to_hex(predicted)}")

    # The receipt location must be usable before anything is committed.
    if receipt_dir is not None:
        (Path(receipt_dir) / "sig").mkdir(parents=True, exist_ok=True)

    handle = engine.carve(code)

    if receipt_dir is not None:
        try:
            write_receipt(receipt_dir, engine_identity, handle, code, signing_key=signing_key, timestamp=timestamp)
        except OSError as e:
            raise ReceiptNotWritten(handle, e) from e
        print(f"  Receipt: {receipt_dir}")

    print(f"PASS: Carved at {to_hex(handle)}")
    return handle


def _handle_opt(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_handle(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _code_arg(source: str, as_hex: bool, hint: str) -> bytes:
    try:
        return read_code(source, as_hex)
    except (ValueError, OSError) as e:
        raise click.BadParameter(str(e), param_hint=hint)


def _rules(max_code_size: int, forbidden_byte: int) -> HostRules:
    return HostRules(forbidden_first_byte=forbidden_byte, max_code_size=max_code_size)


engine_option = click.option(
    "--engine", envvar="CARVE_ENGINE", required=True, callback=_handle_opt, help="Engine identity (20-byte hex)."
)
hex_option = click.option("--hex", "as_hex", is_flag=True, help="Treat CODE as a hex literal instead of a file path.")


def rules_options(f):
    f = click.option("--max-code-size", type=int, default=DEFAULT_MAX_CODE_SIZE, show_default=True)(f)
    f = click.option(
        "--forbidden-byte",
        type=click.IntRange(0, 255),
        default=DEFAULT_FORBIDDEN_FIRST_BYTE,
        show_default=True,
        help="Reserved first byte the host refuses to store.",
    )(f)
    return f


@click.group()
def main() -> None:
    """Content-addressed artifact placement."""


@main.command("address")
@click.argument("code")
@engine_option
@hex_option
def address_cmd(code: str, engine: bytes, as_hex: bool) -> None:
    """Print the handle CODE would be carved at."""
    click.echo(to_hex(address_of(engine, _code_arg(code, as_hex, "CODE"))))


@main.command("deploy")
@click.argument("code")
@click.option(
    "--ledger", "ledger_dir", envvar="CARVE_LEDGER", required=True, type=click.Path(file_okay=False, path_type=Path)
)
@engine_option
@hex_option
@rules_options
@click.option("--receipt", "receipt_dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--gold", is_flag=True, help="Use canonical test key and timestamp for the receipt")
def deploy_cmd(
    code: str,
    ledger_dir: Path,
    engine: bytes,
    as_hex: bool,
    max_code_size: int,
    forbidden_byte: int,
    receipt_dir: Path | None,
    gold: bool,
) -> None:
    """Carve CODE into a directory ledger."""
    try:
        deploy_code(
            ledger_dir,
            engine,
            read_code(code, as_hex),
            _rules(max_code_size, forbidden_byte),
            receipt_dir=receipt_dir,
            signing_key=CANONICAL_PUBLISHER_SEED if gold else None,
            timestamp=GOLD_TIMESTAMP if gold else None,
        )
    except ReceiptNotWritten as e:
        # The ledger changed; say so instead of reporting a failed deploy.
        print(f"WARN: {e}")
        raise SystemExit(2)
    except Exception as e:
        # Fail closed, with a single-line reason.
        # Avoid stack traces in demos and in automated pipelines.
        print(f"FATAL: {e}")
        raise SystemExit(1)


@main.command("export")
@click.argument("ledger_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("out", type=click.Path(file_okay=False, path_type=Path))
@engine_option
def export_cmd(ledger_dir: Path, out: Path, engine: bytes) -> None:
    """Write OUT/artifacts.parquet describing every artifact in LEDGER_DIR."""
    n = export_ledger(DirectoryLedger(ledger_dir), engine, out)
    print(f"Exported {n} artifact(s) to {out}")


@main.command("anchor")
@click.argument("factory", callback=_handle_opt)
@click.argument("engine_code", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--salt", default="0x" + "00" * SALT_LEN, show_default=True, help="Factory salt (32-byte hex).")
def anchor_cmd(factory: bytes, engine_code: Path, salt: str) -> None:
    """Print the engine identity a deterministic FACTORY gives ENGINE_CODE."""
    raw_salt = _code_arg(salt, True, "--salt")
    if len(raw_salt) != SALT_LEN:
        raise click.BadParameter(f"salt must be {SALT_LEN} bytes", param_hint="--salt")
    click.echo(to_hex(anchored_identity(factory, raw_salt, engine_code.read_bytes())))


@main.command("publisher")
def publisher_cmd() -> None:
    """Print the demo publisher key as a trust-store entry."""
    click.echo(json.dumps({"trusted_publishers": [public_key_ed25519(CANONICAL_PUBLISHER_SEED).hex()]}))


if __name__ == "__main__":
    main()
