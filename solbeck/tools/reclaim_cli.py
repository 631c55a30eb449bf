"""
Command-line driver for the reclaim pipeline.

How to run:
    From project root (with .env configured):
        python -m solbeck.tools.reclaim_cli scan --keys-file keys.txt
        python -m solbeck.tools.reclaim_cli run --keys-file keys.txt --destination <ADDR> --burn-inactive
        python -m solbeck.tools.reclaim_cli stats
        python -m solbeck.tools.reclaim_cli join --user-id 42 --code magnumcommunity

Keys are read from --keys-file, else from stdin (whitespace/comma separated).
They are never echoed.

Required env vars:
    SOLANA_RPC_URL (or RPC_URL), FEE_PAYER_SECRET, FEE_COLLECTOR, BOT_TOKEN
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from solbeck.agent.runtime import build_service
from solbeck.agent.service import ReclaimService
from solbeck.core.exceptions import ConfigError, SolbeckError
from solbeck.ledger.instructions import lamports_to_sol
from solbeck.scanner.selection import BurnSelection
from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)

CLI_USER_ID = "cli"


def _read_keys(path: str | None) -> str:
    if path:
        return Path(path).read_text(encoding="utf-8")
    return sys.stdin.read()


def _print_selection(selection: BurnSelection) -> None:
    for number in range(selection.total_pages):
        for item in selection.page(number).items:
            mark = "x" if item.selected else " "
            r = item.record
            print(f"[{mark}] {item.index:3d} {r.display_name:<32} {r.activity.value:<8} {r.address}")


async def _scan(service: ReclaimService, args: argparse.Namespace) -> int:
    service.begin(args.user_id, _read_keys(args.keys_file), locale=args.locale)
    try:
        result = await service.scan(args.user_id, check_activity=not args.no_activity_check)
        print(json.dumps(result.summary()))
        _print_selection(service.selection(args.user_id))
    finally:
        service.cancel(args.user_id)
    return 0


async def _run(service: ReclaimService, args: argparse.Namespace) -> int:
    def select(selection: BurnSelection) -> None:
        if args.burn_all:
            selection.select_all()
        elif args.burn_inactive:
            selection.select_all_inactive()
        for index in args.burn_index or []:
            selection.toggle(index)

    outcome = await service.run(
        args.user_id,
        _read_keys(args.keys_file),
        args.destination,
        select=select,
        burn_only=args.burn_only,
        check_activity=not args.no_activity_check,
        locale=args.locale,
    )
    print(outcome.summary)
    return 0


def _stats(service: ReclaimService, args: argparse.Namespace) -> int:
    stats = service.stats()
    for key in ("gross_lamports", "fee_lamports", "fees_collected_lamports", "net_lamports"):
        stats[key.replace("_lamports", "_sol")] = lamports_to_sol(stats[key])
    print(json.dumps(stats, indent=2))
    return 0


def _join(service: ReclaimService, args: argparse.Namespace) -> int:
    state = service.join_referral(args.user_id, args.code)
    if state is None:
        print("Unknown referral code", file=sys.stderr)
        return 1
    print(json.dumps({**state.to_dict(), "remaining_free_wallets": service.remaining_free_wallets(args.user_id)}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan, burn and close Solana token accounts and reclaim rent.")
    parser.add_argument("--user-id", default=CLI_USER_ID, help="User id for quota and stats records (default: cli)")
    parser.add_argument("--locale", default="en", help="Message locale (en, ru)")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Classify token accounts without sending anything")
    scan.add_argument("--keys-file", help="File with secret keys (default: stdin)")
    scan.add_argument("--no-activity-check", action="store_true", help="Skip inactivity classification")

    run = sub.add_parser("run", help="Burn selected tokens, close empty accounts, sweep and settle")
    run.add_argument("--keys-file", help="File with secret keys (default: stdin)")
    run.add_argument("--destination", help="Consolidation address (default: first wallet)")
    run.add_argument("--burn-inactive", action="store_true", help="Burn every inactive token balance")
    run.add_argument("--burn-all", action="store_true", help="Burn every token balance")
    run.add_argument("--burn-index", type=int, action="append", help="Toggle burn selection by index (repeatable)")
    run.add_argument("--burn-only", action="store_true", help="Burn-only mode (requires a selection)")
    run.add_argument("--no-activity-check", action="store_true", help="Skip inactivity classification")

    sub.add_parser("stats", help="Print aggregate settlement statistics")

    join = sub.add_parser("join", help="Attach a referral code to a user")
    join.add_argument("--code", required=True)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        service = build_service()
    except ConfigError as e:
        logger.error("solbeck_config_invalid", error=str(e))
        print("CONFIG ERROR:", e, file=sys.stderr)
        return 2
    handlers: dict[str, Any] = {"stats": _stats, "join": _join}
    try:
        if args.command in handlers:
            return handlers[args.command](service, args)
        runner = _scan if args.command == "scan" else _run
        return asyncio.run(runner(service, args))
    except SolbeckError as e:
        logger.error("solbeck_cli_failed", command=args.command, error=str(e))
        print("ERROR:", service.describe_failure(e, args.locale), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
