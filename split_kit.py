"""
SplitKit command line
- Keep groups, shared expenses and payments in a local JSON database.
- Show who owes whom and the fewest payments that settle everyone up.

Run:
  split-kit balances "Phuket Villa"
  split-kit add-expense "Phuket Villa" --title Dinner --amount 90 --payer you
  split-kit settle "Phuket Villa" --record
"""
from __future__ import annotations
import argparse
import logging
import sys
from typing import Dict, List, Optional

from allocation import SPLIT_MODES
from config import load_config
from errors import SplitKitError
from main_app import SplitKitApp
from models import Group
from storage import open_store
from utils import format_money

logger = logging.getLogger("split_kit")


def _find_group(app: SplitKitApp, key: str) -> Group:
    for g in app.groups() or []:
        if key == g.id or key.strip().lower() == g.name.lower():
            return g
    raise SplitKitError(f"No group named {key!r}")


def _find_member(group: Group, key: str) -> str:
    for m in group.members:
        if key == m.id or key.strip().lower() == m.name.lower():
            return m.id
    raise SplitKitError(f"No member {key!r} in {group.name}")


def _parse_values(group: Group, text: Optional[str]) -> Dict[str, float]:
    """Parse 'name=value,name=value' into member id -> value"""
    out = {}
    for pair in (text or "").split(","):
        if not pair.strip():
            continue
        if "=" not in pair:
            raise SplitKitError(f"Expected name=value, got {pair!r}")
        k, v = pair.split("=", 1)
        try:
            out[_find_member(group, k)] = float(v)
        except ValueError:
            raise SplitKitError(f"Not a number: {v!r}") from None
    return out


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="split-kit", description="Split group expenses and settle up")
    p.add_argument("--data-dir", help="directory holding the database (default ~/.splitkit)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("groups", help="list groups")

    s = sub.add_parser("new-group", help="create a group")
    s.add_argument("name")
    s.add_argument("--currency")
    s.add_argument("--members", default="You", help="comma-separated member names")

    s = sub.add_parser("balances", help="show net balances")
    s.add_argument("group")

    s = sub.add_parser("settle", help="suggest payments that settle the group")
    s.add_argument("group")
    s.add_argument("--record", action="store_true", help="record the suggested payments")

    s = sub.add_parser("add-expense", help="add an expense")
    s.add_argument("group")
    s.add_argument("--title", required=True)
    s.add_argument("--amount", required=True, type=float)
    s.add_argument("--payer", required=True)
    s.add_argument("--split", choices=SPLIT_MODES, default="equal")
    s.add_argument("--values", help="per-member amounts, percentages or weights: name=value,...")
    s.add_argument("--note")

    s = sub.add_parser("pay", help="record a payment between two members")
    s.add_argument("group")
    s.add_argument("payer")
    s.add_argument("receiver")
    s.add_argument("amount", type=float)

    for name in ("export-excel", "export-csv", "import-csv"):
        s = sub.add_parser(name)
        s.add_argument("group")
        s.add_argument("path")
    return p


def run(args: argparse.Namespace, out=None) -> int:
    out = out or sys.stdout
    cfg = load_config(args.data_dir)
    app = SplitKitApp(open_store(cfg), cfg, notify=lambda msg: print(msg, file=sys.stderr))

    if args.command == "groups":
        for g in app.groups() or []:
            print(f"{g.id}  {g.name} ({g.currency}, {len(g.members)} members)", file=out)
        return 0

    if args.command == "new-group":
        names = [n for n in args.members.split(",") if n.strip()]
        g = app.create_group(args.name, args.currency, names)
        if g is None:
            return 1
        print(g.id, file=out)
        return 0

    group = _find_group(app, args.group)

    if args.command == "balances":
        view = app.overview(group.id)
        if view is None:
            return 1
        for m in group.members:
            print(f"{m.name:<20} {format_money(view.nets[m.id], group.currency):>16}", file=out)
        print(view.status, file=out)
        return 0

    if args.command == "settle":
        view = app.overview(group.id)
        if view is None:
            return 1
        names = {m.id: m.name for m in group.members}
        if not view.suggestions:
            print("All settled. Nothing to pay.", file=out)
            return 0
        for t in view.suggestions:
            print(f"{names[t.from_member]} pays {names[t.to_member]} {format_money(t.amount, group.currency)}", file=out)
        if args.record:
            return 0 if app.settle_up(group.id) is not None else 1
        return 0

    if args.command == "add-expense":
        e = app.add_expense(
            group.id, args.title, args.amount, _find_member(group, args.payer),
            mode=args.split, values=_parse_values(group, args.values), note=args.note,
        )
        if e is None:
            return 1
        print(e.id, file=out)
        return 0

    if args.command == "pay":
        s = app.record_payment(
            group.id, _find_member(group, args.payer), _find_member(group, args.receiver), args.amount
        )
        return 0 if s is not None else 1

    if args.command == "export-excel":
        return 0 if app.export_excel(group.id, args.path) else 1
    if args.command == "export-csv":
        return 0 if app.export_csv(group.id, args.path) else 1
    if args.command == "import-csv":
        return 0 if app.import_csv(group.id, args.path) is not None else 1
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args)
    except (SplitKitError, ValueError) as ex:
        logger.error("%s", ex)
        return 1


if __name__ == "__main__":
    sys.exit(main())
