import json
from pathlib import Path

import click

from carve_core.ids import parse_handle
from carve_ledger.ledger import DirectoryLedger

from .logic import verify_handle, verify_receipt


def _emit(result: dict) -> None:
    click.echo(json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    if result["status"] != "PASS":
        raise SystemExit(1)


def _handle_arg(ctx, param, value):
    try:
        return parse_handle(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


ledger_option = click.option(
    "--ledger",
    "ledger_dir",
    envvar="CARVE_LEDGER",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory ledger to read artifacts from.",
)


@click.group()
def main():
    pass


@main.command("handle")
@click.argument("handle", callback=_handle_arg)
@ledger_option
@click.option("--engine", envvar="CARVE_ENGINE", required=True, callback=_handle_arg, help="Engine identity (20-byte hex).")
def handle_cmd(handle: bytes, ledger_dir: Path, engine: bytes):
    _emit(verify_handle(DirectoryLedger(ledger_dir), engine, handle))


@main.command("receipt")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@ledger_option
@click.option("--trust-root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None)
def receipt_cmd(path: Path, ledger_dir: Path, trust_root: Path | None):
    _emit(verify_receipt(path, DirectoryLedger(ledger_dir), trust_root))


if __name__ == "__main__":
    main()
