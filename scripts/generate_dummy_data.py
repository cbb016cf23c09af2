#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import random
import sys
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from reportops.config import default_db_path, load_env
from reportops.log import configure_logging
from reportops.schema import TABLES, init_db, insert_rows


UTC = timezone.utc

# network name on the ad side -> CRM source strings used for it
NETWORKS = [
    {"network": "Google Ads", "prefix": "gads", "sources": ["adwords", "google"], "base_cpc": 2.20},
    {"network": "Facebook", "prefix": "meta", "sources": ["facebook", "fb"], "base_cpc": 1.10},
    {"network": "TikTok", "prefix": "tt", "sources": ["tiktok"], "base_cpc": 0.85},
]
ORGANIC_SOURCES = ["organic", "newsletter", None]
COUNTRIES = ["DK", "SE", "NO", "DE", "FI", ""]
PRODUCTS = ["Starter Kit", "Monthly Box", "Premium Box"]
PAGES = [("/", "home"), ("/offer", "landing"), ("/checkout", "checkout"), ("/blog/guide", "article")]
DEVICES = ["mobile", "desktop", "tablet"]


def _iso_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def _iso_ts(dt: datetime) -> str:
    return dt.astimezone(UTC).replace(microsecond=0).strftime("%Y-%m-%d %H:%M:%S")


def _daterange(start: date, end: date) -> Iterable[date]:
    if end < start:
        raise ValueError("end_date must be >= start_date")
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def _rand_ts(rng: random.Random, day: date) -> str:
    t = time(hour=rng.randint(0, 23), minute=rng.randint(0, 59), second=rng.randint(0, 59), tzinfo=UTC)
    return _iso_ts(datetime.combine(day, t))


def _build_structure() -> list[dict[str, Any]]:
    ads: list[dict[str, Any]] = []
    for n in NETWORKS:
        for campaign_idx in range(1, 3):  # 2 campaigns / network
            campaign_id = f"{n['prefix']}_camp_{campaign_idx:02d}"
            for adset_idx in range(1, 3):  # 2 ad sets / campaign
                adset_id = f"{campaign_id}_as_{adset_idx:02d}"
                for ad_idx in range(1, 3):  # 2 ads / ad set
                    ad_id = f"{adset_id}_ad_{ad_idx:02d}"
                    ads.append(
                        {
                            **n,
                            "campaign_id": campaign_id,
                            "campaign_name": f"{n['network']} Campaign {campaign_idx}",
                            "adset_id": adset_id,
                            "adset_name": f"{n['network']} Ad Set {campaign_idx}.{adset_idx}",
                            "ad_id": ad_id,
                            "ad_name": f"{n['network']} Ad {campaign_idx}.{adset_idx}.{ad_idx}",
                        }
                    )
    return ads


def generate_dummy_data(*, start_date: date, end_date: date, seed: int, sqlite_path: Path) -> dict[str, Any]:
    rng = random.Random(seed)
    ads = _build_structure()

    spend: list[dict[str, Any]] = []
    customers: list[dict[str, Any]] = []
    subscriptions: list[dict[str, Any]] = []
    invoices: list[dict[str, Any]] = []
    page_views: list[dict[str, Any]] = []
    sessions: list[dict[str, Any]] = []

    source_ids: dict[str | None, int] = {}
    sources_table: list[dict[str, Any]] = []
    for s in [src for n in NETWORKS for src in n["sources"]] + ORGANIC_SOURCES:
        if s is None:
            continue
        source_ids[s] = len(source_ids) + 1
        sources_table.append({"id": source_ids[s], "source": s})
    products = [{"id": i + 1, "product_name": name} for i, name in enumerate(PRODUCTS)]

    # --- Ad spend + CRM subscriptions matched by tracking ids ---
    for day in _daterange(start_date, end_date):
        for ad in ads:
            clicks = rng.randint(5, 60)
            impressions = clicks * rng.randint(30, 90)
            cost = round(clicks * float(ad["base_cpc"]) * rng.uniform(0.8, 1.2), 2)
            spend.append(
                {
                    "date": _iso_date(day),
                    "network": ad["network"],
                    "account_id": f"{ad['prefix']}_acc_001",
                    "campaign_id": ad["campaign_id"],
                    "campaign_name": ad["campaign_name"],
                    "adset_id": ad["adset_id"],
                    "adset_name": ad["adset_name"],
                    "ad_id": ad["ad_id"],
                    "ad_name": ad["ad_name"],
                    "cost": cost,
                    "clicks": clicks,
                    "impressions": impressions,
                    "conversions": rng.randint(0, max(1, clicks // 10)),
                }
            )

            for _ in range(rng.randint(0, 3)):
                attributed = rng.random() < 0.85
                source = rng.choice(ad["sources"]) if attributed else rng.choice(ORGANIC_SOURCES)
                customer_id = len(customers) + 1
                created = _rand_ts(rng, day)
                returning = rng.random() < 0.15
                customers.append(
                    {
                        "id": customer_id,
                        "country": rng.choice(COUNTRIES),
                        "date_registered": (datetime.fromisoformat(created) - timedelta(days=40)).strftime("%Y-%m-%d %H:%M:%S") if returning else created,
                    }
                )
                sub_id = len(subscriptions) + 1
                subscriptions.append(
                    {
                        "id": sub_id,
                        "customer_id": customer_id,
                        "product_id": rng.choice(products)["id"],
                        "source_id": source_ids.get(source),
                        "date_create": created,
                        "deleted": 1 if rng.random() < 0.03 else 0,
                        "tracking_id_4": ad["campaign_id"] if attributed else None,
                        "tracking_id_2": ad["adset_id"] if attributed else None,
                        "tracking_id": ad["ad_id"] if attributed else None,
                    }
                )
                if rng.random() < 0.92:
                    invoices.append(
                        {
                            "id": len(invoices) + 1,
                            "subscription_id": sub_id,
                            "customer_id": customer_id,
                            "type": 1,
                            "deleted": 1 if rng.random() < 0.02 else 0,
                            "is_marked": 1 if rng.random() < 0.6 else 0,
                            "tag": None,
                            "order_date": created,
                        }
                    )
                if rng.random() < 0.1:
                    # upsell: its own subscription whose trial invoice names the parent
                    upsell_id = len(subscriptions) + 1
                    subscriptions.append({**subscriptions[-1], "id": upsell_id, "product_id": rng.choice(products)["id"]})
                    invoices.append(
                        {
                            "id": len(invoices) + 1,
                            "subscription_id": upsell_id,
                            "customer_id": customer_id,
                            "type": 1,
                            "deleted": 0,
                            "is_marked": 1 if rng.random() < 0.7 else 0,
                            "tag": f"upsell;parent-sub-id={sub_id}",
                            "order_date": created,
                        }
                    )
                if rng.random() < 0.2:
                    # one-time sale, tracked on the invoice itself
                    invoices.append(
                        {
                            "id": len(invoices) + 1,
                            "subscription_id": None,
                            "customer_id": customer_id,
                            "type": 3,
                            "deleted": 1 if rng.random() < 0.02 else 0,
                            "is_marked": 1 if rng.random() < 0.8 else 0,
                            "tag": None,
                            "order_date": _rand_ts(rng, day),
                            "product_id": rng.choice(products)["id"],
                            "source_id": source_ids.get(source),
                            "tracking_id_4": ad["campaign_id"] if attributed else None,
                            "tracking_id_2": ad["adset_id"] if attributed else None,
                            "tracking_id": ad["ad_id"] if attributed else None,
                        }
                    )

        # --- On-page analytics ---
        for _ in range(rng.randint(40, 80)):
            path, page_type = rng.choice(PAGES)
            measured = rng.random() < 0.9
            page_views.append(
                {
                    "created_at": _rand_ts(rng, day),
                    "url_path": path,
                    "page_type": page_type,
                    "utm_source": rng.choice(["google", "facebook", "tiktok", None]),
                    "device_type": rng.choice(DEVICES),
                    "country_code": rng.choice(COUNTRIES) or None,
                    "visitor_id": f"v_{rng.randint(1, 400):04d}",
                    "active_time_s": round(rng.uniform(0, 180), 1) if measured else None,
                    "hero_scroll_passed": 1 if rng.random() < 0.55 else 0,
                    "form_view": 1 if rng.random() < 0.2 else 0,
                }
            )
        for _ in range(rng.randint(20, 40)):
            path, _page_type = rng.choice(PAGES)
            views = rng.randint(1, 6)
            sessions.append(
                {
                    "session_start": _rand_ts(rng, day),
                    "entry_url_path": path,
                    "entry_utm_source": rng.choice(["google", "facebook", "tiktok", None]),
                    "entry_device_type": rng.choice(DEVICES),
                    "entry_country_code": rng.choice(COUNTRIES) or None,
                    "visit_number": rng.choice([1, 1, 1, 2, 3]),
                    "page_views": views,
                    "active_time_s": round(rng.uniform(3, 600), 1),
                    "bounced": 1 if views == 1 else 0,
                }
            )

    tables = {
        "ad_spend": spend,
        "customer": customers,
        "source": sources_table,
        "product": products,
        "subscription": subscriptions,
        "invoice": invoices,
        "page_views": page_views,
        "sessions": sessions,
    }
    init_db(str(sqlite_path))
    for name in TABLES:
        insert_rows(str(sqlite_path), name, tables[name])

    return {
        "seed": seed,
        "date_range": {"start": _iso_date(start_date), "end": _iso_date(end_date)},
        "paths": {"sqlite": str(sqlite_path)},
        "row_counts": {name: len(rows) for name, rows in tables.items()},
        "notes": [
            "All data is synthetic (dummy) and not business truth.",
            "Subscriptions carry the campaign/ad set/ad ids of the ad they were attributed to in tracking_id_4/_2/tracking_id.",
            "Upsells are subscriptions whose trial invoice is tagged parent-sub-id=<parent>; one-time sales are type 3 invoices.",
        ],
    }


def main(argv: list[str]) -> int:
    load_env()
    parser = argparse.ArgumentParser(description="Generate synthetic ad spend, CRM and analytics data (SQLite).")
    parser.add_argument("--start-date", type=str, default="", help="YYYY-MM-DD (default: 30 days ago)")
    parser.add_argument("--end-date", type=str, default="", help="YYYY-MM-DD (default: today)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--sqlite-path", type=str, default=default_db_path())
    args = parser.parse_args(argv)
    configure_logging()

    today = date.today()
    start = today - timedelta(days=30) if not args.start_date else date.fromisoformat(args.start_date)
    end = today if not args.end_date else date.fromisoformat(args.end_date)

    result = generate_dummy_data(start_date=start, end_date=end, seed=args.seed, sqlite_path=Path(args.sqlite_path))
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
