"""CLI entrypoint: run one operation against a JSONL state store.

Example:

    python -m private_marbles create \\
        --transient 'marble={"name":"m1","color":"blue","size":5,"owner":"alice","price":100}'
    python -m private_marbles readGeneral m1

The operation runs in a single store transaction that is committed only when
the operation succeeds.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import logfire
from rich.console import Console
from rich.markup import escape

from private_marbles.config import Config
from private_marbles.contract import PrivateMarbles, Response
from private_marbles.store.jsonl import JsonlStateStore


def _parse_transient(items: list[str]) -> dict[str, bytes]:
    transient: dict[str, bytes] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --transient entry (expected KEY=VALUE): {item!r}")
        transient[key] = value.encode("utf-8")
    return transient


def _parse_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="private-marbles",
        description="Run one private-marble operation against a local JSONL store.",
    )
    parser.add_argument("function", help="Operation name, e.g. create or readGeneral.")
    parser.add_argument("args", nargs="*", help="Positional operation arguments.")
    parser.add_argument(
        "--transient",
        action="append",
        default=[],
        metavar="KEY=JSON",
        help="Transient map entry; repeat for several keys.",
    )
    parser.add_argument(
        "--store",
        default="",
        help="JSONL store path (default: $PM_STORE_PATH or ~/.private-marbles/state.jsonl).",
    )
    parser.add_argument(
        "--no-logfire",
        action="store_true",
        help="Log to stderr with the standard logging handler instead of logfire.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args(argv)


def _configure_logging(*, use_logfire: bool, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    if use_logfire:
        logfire.configure(send_to_logfire="if-token-present")
        logging.basicConfig(level=level, handlers=[logfire.LogfireLoggingHandler()])
    else:
        logging.basicConfig(level=level)


def run(
    *,
    function: str,
    args: list[str],
    transient: dict[str, bytes],
    config: Config,
    logger: logging.Logger | None = None,
) -> Response:
    """Function entrypoint: invoke `function` and commit only on success."""

    store = JsonlStateStore(config.store_path)
    txn = store.begin()
    try:
        response = PrivateMarbles(txn, config=config, logger=logger).invoke(
            function, args, transient
        )
    except BaseException:
        txn.discard()
        raise
    if response.ok:
        txn.commit()
    else:
        txn.discard()
    return response


def _render(console: Console, payload: bytes) -> None:
    if not payload:
        console.print("[green]OK[/green]")
        return
    text = payload.decode("utf-8")
    try:
        json.loads(text)
    except ValueError:
        console.print(text, markup=False)
        return
    console.print_json(text)


def main(argv: list[str] | None = None) -> int:
    ns = _parse_cli_args(argv)
    _configure_logging(use_logfire=not ns.no_logfire, verbose=ns.verbose)

    config = Config(store_path=Path(ns.store)) if ns.store else Config()
    err = Console(stderr=True)
    try:
        transient = _parse_transient(ns.transient)
    except ValueError as e:
        err.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 2

    response = run(
        function=ns.function,
        args=list(ns.args),
        transient=transient,
        config=config,
        logger=logging.getLogger("private_marbles.cli"),
    )
    if not response.ok:
        err.print(f"[red]Error:[/red] {escape(response.message)}", highlight=False)
        return 1
    _render(Console(), response.payload)
    return 0
