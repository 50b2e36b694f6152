from __future__ import annotations

import argparse
import json
import logging

from .__version__ import __version__
from .assembly import operator_matches, parse_operator_expression
from .config import ViewerConfig
from .selection_expressions import create_selection_expressions


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="molloci", description="Macromolecular selection toolkit")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sp = p.add_subparsers(dest="cmd")

    sp_info = sp.add_parser("info", help="Show package info")
    sp_info.add_argument("--label", default="1ABC", help="Label used for the default buckets")
    sp_info.set_defaults(func=_cmd_info)

    sp_oper = sp.add_parser("oper", help="Parse an operator expression")
    sp_oper.add_argument("expression", help='Operator expression, e.g. "(X0)(1-5)"')
    sp_oper.add_argument("--match", default=None, help='struct_oper_id to test, e.g. "2x5"')
    sp_oper.set_defaults(func=_cmd_oper)
    return p


def _cmd_info(args: argparse.Namespace) -> None:
    config = ViewerConfig()
    buckets = [
        {"label": e.label, "type": e.type.value, "tag": e.tag}
        for e in create_selection_expressions(args.label)
    ]
    print(
        json.dumps(
            {
                "package": {
                    "version": __version__,
                    "default_assembly_id": config.default_assembly_id,
                    "alignment_url": config.alignment_url,
                    "buckets": buckets,
                }
            },
            indent=2,
        )
    )


def _cmd_oper(args: argparse.Namespace) -> None:
    groups = parse_operator_expression(args.expression)
    out = {"expression": args.expression, "groups": groups}
    if args.match is not None:
        out["struct_oper_id"] = args.match
        out["matches"] = operator_matches(groups, args.match)
    print(json.dumps(out, indent=2))


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
