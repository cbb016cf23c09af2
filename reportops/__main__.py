from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import structlog

from reportops.config import get_settings, load_env
from reportops.dates import DatePreset, DateRange, parse_date_range, resolve_preset, today_in_timezone
from reportops.errors import ReportError, ValidationError
from reportops.log import configure_logging
from reportops.registry import FAMILIES, dimensions_for
from reportops.service import ReportService
from reportops.tree import build_parent_filters


logger = structlog.get_logger(__name__)


def _print(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, default=str))


def _date_range(args: argparse.Namespace) -> DateRange:
    if args.preset:
        return resolve_preset(args.preset, _today(args))
    if not args.start_date or not args.end_date:
        raise ValidationError("Pass --preset or both --start-date and --end-date")
    return parse_date_range(args.start_date, args.end_date)


def _today(args: argparse.Namespace) -> date:
    if not args.today:
        return today_in_timezone()
    return parse_date_range(args.today, args.today).start


def _dimensions(args: argparse.Namespace) -> list[str]:
    if args.dimensions:
        return [d.strip() for d in args.dimensions.split(",") if d.strip()]
    return dimensions_for(args.family)


def _filters(raw: list[str]) -> list[dict[str, str]]:
    """--filter field:operator:value (the value may itself contain ':')."""
    out = []
    for item in raw:
        parts = item.split(":", 2)
        if len(parts) != 3:
            raise ValidationError(f"--filter must look like field:operator:value, got {item!r}")
        out.append({"field": parts[0], "operator": parts[1], "value": parts[2]})
    return out


def _parent_filters(args: argparse.Namespace, dims: list[str]) -> dict[str, Any]:
    if args.parent_key:
        return build_parent_filters(args.parent_key, dims)
    parents: dict[str, Any] = {}
    for item in args.parent or []:
        name, sep, value = item.partition("=")
        if not sep:
            raise ValidationError(f"--parent must look like dimension=value, got {item!r}")
        parents[name] = value
    return parents


def _add_query_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--family", type=str, default="attribution", choices=list(FAMILIES))
    p.add_argument("--dimensions", type=str, default="", help="Comma separated dimension path (default: every dimension of the family)")
    p.add_argument("--preset", type=str, default="", choices=[""] + [x.value for x in DatePreset])
    p.add_argument("--start-date", type=str, default="")
    p.add_argument("--end-date", type=str, default="")
    p.add_argument("--today", type=str, default="", help="Evaluate presets as of this date (YYYY-MM-DD)")
    p.add_argument("--filter", action="append", default=[], help="field:operator:value, repeatable")
    p.add_argument("--sort-by", type=str, default=None)
    p.add_argument("--sort-direction", type=str, default=None)
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--caller", type=str, default="cli")


async def _run(args: argparse.Namespace, service: ReportService) -> Any:
    if args.cmd == "presets":
        today = _today(args)
        return {p.value: resolve_preset(p, today).to_dict() for p in DatePreset}

    if args.cmd == "view":
        text = args.view if args.view.lstrip().startswith("{") else Path(args.view).read_text(encoding="utf-8")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"View is not valid JSON: {exc}") from exc
        resolved = service.resolve_saved_view(payload, _today(args) if args.today else None)
        return {
            "date_range": resolved.date_range.to_dict(),
            "dimensions": resolved.dimensions,
            "filters": [f.model_dump() for f in resolved.filters],
            "sort_by": resolved.sort_by,
            "sort_direction": resolved.sort_direction,
        }

    dims = _dimensions(args)
    common = dict(
        family=args.family,
        dimensions=dims,
        date_range=_date_range(args),
        filters=_filters(args.filter),
        sort_by=args.sort_by,
        sort_direction=args.sort_direction,
        limit=args.limit,
        caller=args.caller,
    )
    if args.cmd == "tree":
        rows = await service.rebuild_tree(expanded_keys=args.expand, **common)
    else:
        rows = await service.query(depth=args.depth, parent_filters=_parent_filters(args, dims), **common)
    return {"rows": [r.to_dict() for r in rows], "dimensions": dims}


def main(argv: list[str]) -> int:
    load_env()
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="reportops", description="Hierarchical drill-down reports over ad spend and CRM data.")
    parser.add_argument("--ads-db", type=str, default=settings.ads_db_path, help="SQLite db holding ad_spend and analytics tables")
    parser.add_argument("--crm-db", type=str, default=settings.crm_db_path, help="SQLite db holding the CRM tables")
    parser.add_argument("--log-level", type=str, default=settings.log_level)
    parser.add_argument("--log-json", action="store_true", default=settings.log_json)

    sub = parser.add_subparsers(dest="cmd", required=True)

    query = sub.add_parser("query", help="Fetch one drill-down level as JSON.")
    _add_query_args(query)
    query.add_argument("--depth", type=int, default=0)
    query.add_argument("--parent", action="append", default=[], help="dimension=value, repeatable")
    query.add_argument("--parent-key", type=str, default="", help="Key of the row to expand (a::b::c)")

    tree = sub.add_parser("tree", help="Rebuild a tree with previously expanded rows.")
    _add_query_args(tree)
    tree.add_argument("--expand", action="append", default=[], help="Row key to expand, repeatable")

    view = sub.add_parser("view", help="Resolve a saved view (JSON string or file) into concrete parameters.")
    view.add_argument("view", type=str)
    view.add_argument("--today", type=str, default="")

    presets = sub.add_parser("presets", help="Print every date preset resolved for today.")
    presets.add_argument("--today", type=str, default="")

    args = parser.parse_args(argv)
    configure_logging(args.log_level, json=args.log_json)
    service = ReportService(args.ads_db, args.crm_db)

    try:
        result = asyncio.run(_run(args, service))
    except ReportError as exc:
        _print({"error": exc.to_dict()})
        if exc.client_correctable:
            return 2
        logger.error("cli_command_failed", cmd=args.cmd, code=exc.code)
        return 1

    _print(result)
    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
