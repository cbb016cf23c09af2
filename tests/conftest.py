"""Shared test fixtures for reportops tests."""

from datetime import date
from pathlib import Path
from typing import Any

import pytest
import structlog

from reportops.dates import DateRange
from reportops.schema import init_db, insert_rows
from reportops.service import ReportService


AD_SPEND: list[dict[str, Any]] = [
    # Google Ads: one campaign, two ad sets
    {"date": "2026-02-09", "network": "Google Ads", "campaign_id": "g_c1", "campaign_name": "Brand",
     "adset_id": "g_c1_as1", "adset_name": "Brand Exact", "ad_id": "g_ad1", "ad_name": "Brand Ad 1",
     "cost": 60.0, "clicks": 6, "impressions": 600, "conversions": 1},
    {"date": "2026-02-10", "network": "Google Ads", "campaign_id": "g_c1", "campaign_name": "Brand",
     "adset_id": "g_c1_as2", "adset_name": "Brand Broad", "ad_id": "g_ad2", "ad_name": "Brand Ad 2",
     "cost": 40.0, "clicks": 4, "impressions": 400, "conversions": 1},
    # Facebook: spend but no CRM orders
    {"date": "2026-02-10", "network": "Facebook", "campaign_id": "fb_c1", "campaign_name": "Prospecting",
     "adset_id": "fb_c1_as1", "adset_name": "Lookalike", "ad_id": "fb_ad1", "ad_name": "Video 1",
     "cost": 25.5, "clicks": 5, "impressions": 1000, "conversions": 0},
    # outside the test range
    {"date": "2026-01-15", "network": "Google Ads", "campaign_id": "g_c1", "campaign_name": "Brand",
     "adset_id": "g_c1_as1", "adset_name": "Brand Exact", "ad_id": "g_ad1", "ad_name": "Brand Ad 1",
     "cost": 999.0, "clicks": 99, "impressions": 9900, "conversions": 9},
]

SOURCES = [
    {"id": 1, "source": "adwords"},
    {"id": 2, "source": "Google"},
    {"id": 3, "source": "organic"},
]

PRODUCTS = [{"id": 1, "product_name": "Starter Kit"}, {"id": 2, "product_name": "Monthly Box"}]

CUSTOMERS = [
    {"id": 1, "country": "DK", "date_registered": "2026-02-09 08:00:00"},
    {"id": 2, "country": "DK", "date_registered": "2025-12-01 08:00:00"},
    {"id": 3, "country": "SE", "date_registered": "2026-02-10 09:00:00"},
    {"id": 4, "country": "", "date_registered": "2026-02-10 10:00:00"},
    {"id": 5, "country": "SE", "date_registered": "2026-02-10 11:00:00"},
    {"id": 6, "country": "DK", "date_registered": "2026-02-10 12:00:00"},
    {"id": 7, "country": "NO", "date_registered": "2026-02-10 13:00:00"},
]

SUBSCRIPTIONS = [
    # counted everywhere: approved trial, tracked, source adwords
    {"id": 1, "customer_id": 1, "product_id": 1, "source_id": 1, "date_create": "2026-02-09 08:05:00",
     "deleted": 0, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    # counted everywhere: returning customer, unapproved trial, source Google
    {"id": 2, "customer_id": 2, "product_id": 2, "source_id": 2, "date_create": "2026-02-10 08:05:00",
     "deleted": 0, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as2", "tracking_id": "g_ad2"},
    # baseline only: no tracking id, organic
    {"id": 3, "customer_id": 3, "product_id": 1, "source_id": 3, "date_create": "2026-02-10 09:05:00",
     "deleted": 0, "tracking_id_4": None, "tracking_id_2": None, "tracking_id": None},
    # baseline only: unknown country, tracked but no source
    {"id": 4, "customer_id": 4, "product_id": 1, "source_id": None, "date_create": "2026-02-10 10:05:00",
     "deleted": 0, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    # never counted: deleted subscription
    {"id": 5, "customer_id": 5, "product_id": 1, "source_id": 1, "date_create": "2026-02-10 11:05:00",
     "deleted": 1, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    # never counted: upsell linked to subscription 1 (same customer)
    {"id": 6, "customer_id": 1, "product_id": 2, "source_id": 1, "date_create": "2026-02-10 12:05:00",
     "deleted": 0, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    # never counted: no trial invoice
    {"id": 7, "customer_id": 7, "product_id": 1, "source_id": 1, "date_create": "2026-02-10 13:05:00",
     "deleted": 0, "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
]

INVOICES = [
    {"id": 101, "subscription_id": 1, "customer_id": 1, "type": 1, "deleted": 0, "is_marked": 1, "tag": None},
    {"id": 102, "subscription_id": 2, "customer_id": 2, "type": 1, "deleted": 0, "is_marked": 0, "tag": ""},
    {"id": 103, "subscription_id": 3, "customer_id": 3, "type": 1, "deleted": 0, "is_marked": 1, "tag": None},
    {"id": 104, "subscription_id": 4, "customer_id": 4, "type": 1, "deleted": 0, "is_marked": 0, "tag": None},
    {"id": 105, "subscription_id": 5, "customer_id": 5, "type": 1, "deleted": 0, "is_marked": 1, "tag": None},
    {"id": 106, "subscription_id": 6, "customer_id": 1, "type": 1, "deleted": 0, "is_marked": 1,
     "tag": "upsell;parent-sub-id=1"},
    # a rebill (type 2) does not make subscription 7 countable
    {"id": 107, "subscription_id": 7, "customer_id": 7, "type": 2, "deleted": 0, "is_marked": 1, "tag": None},
    # one-time sales (type 3); 110 is deleted, 111 only carries a campaign id
    {"id": 108, "subscription_id": None, "customer_id": 3, "type": 3, "deleted": 0, "is_marked": 1, "tag": None,
     "product_id": 2, "source_id": 1, "order_date": "2026-02-10 14:00:00",
     "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    {"id": 109, "subscription_id": None, "customer_id": 1, "type": 3, "deleted": 0, "is_marked": 0, "tag": None,
     "product_id": 1, "source_id": 3, "order_date": "2026-02-09 15:00:00",
     "tracking_id_4": None, "tracking_id_2": None, "tracking_id": None},
    {"id": 110, "subscription_id": None, "customer_id": 1, "type": 3, "deleted": 1, "is_marked": 1, "tag": None,
     "product_id": 1, "source_id": 1, "order_date": "2026-02-10 16:00:00",
     "tracking_id_4": "g_c1", "tracking_id_2": "g_c1_as1", "tracking_id": "g_ad1"},
    {"id": 111, "subscription_id": None, "customer_id": 2, "type": 3, "deleted": 0, "is_marked": 1, "tag": None,
     "product_id": 2, "source_id": 1, "order_date": "2026-02-10 17:00:00",
     "tracking_id_4": "g_c1", "tracking_id_2": None, "tracking_id": None},
]

PAGE_VIEWS = [
    {"created_at": "2026-02-10 10:00:00", "url_path": "/offer", "page_type": "landing", "utm_source": "google",
     "device_type": "mobile", "country_code": "DK", "visitor_id": "v1", "active_time_s": 2.0,
     "hero_scroll_passed": 0, "form_view": 0},
    {"created_at": "2026-02-10 10:05:00", "url_path": "/offer", "page_type": "landing", "utm_source": "google",
     "device_type": "mobile", "country_code": "DK", "visitor_id": "v2", "active_time_s": 40.0,
     "hero_scroll_passed": 1, "form_view": 1},
    {"created_at": "2026-02-10 10:10:00", "url_path": "/offer", "page_type": "landing", "utm_source": None,
     "device_type": "desktop", "country_code": "SE", "visitor_id": "v2", "active_time_s": None,
     "hero_scroll_passed": 1, "form_view": 0},
    {"created_at": "2026-02-09 11:00:00", "url_path": "/", "page_type": "home", "utm_source": "facebook",
     "device_type": "desktop", "country_code": "SE", "visitor_id": "v3", "active_time_s": 30.0,
     "hero_scroll_passed": 1, "form_view": 0},
]

SESSIONS = [
    {"session_start": "2026-02-10 10:00:00", "entry_url_path": "/offer", "entry_utm_source": "google",
     "entry_device_type": "mobile", "entry_country_code": "DK", "visit_number": 1, "page_views": 1,
     "active_time_s": 2.0, "bounced": 1},
    {"session_start": "2026-02-10 10:05:00", "entry_url_path": "/offer", "entry_utm_source": "google",
     "entry_device_type": "mobile", "entry_country_code": "DK", "visit_number": 2, "page_views": 3,
     "active_time_s": 120.0, "bounced": 0},
    {"session_start": "2026-02-09 11:00:00", "entry_url_path": "/", "entry_utm_source": "facebook",
     "entry_device_type": "desktop", "entry_country_code": "SE", "visit_number": 1, "page_views": 2,
     "active_time_s": 60.0, "bounced": 0},
]


@pytest.fixture(autouse=True)
def reset_structlog():
    """CLI tests configure structlog against a captured stream; undo that after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """A throwaway SQLite database holding every report table and the rows above."""
    path = str(tmp_path / "reportops_test.sqlite")
    init_db(path)
    insert_rows(path, "ad_spend", AD_SPEND)
    insert_rows(path, "source", SOURCES)
    insert_rows(path, "product", PRODUCTS)
    insert_rows(path, "customer", CUSTOMERS)
    insert_rows(path, "subscription", SUBSCRIPTIONS)
    insert_rows(path, "invoice", INVOICES)
    insert_rows(path, "page_views", PAGE_VIEWS)
    insert_rows(path, "sessions", SESSIONS)
    return path


@pytest.fixture
def service(db_path: str) -> ReportService:
    return ReportService(ads_db_path=db_path, crm_db_path=db_path)


@pytest.fixture
def date_range() -> DateRange:
    """2026-02-04..2026-02-10 (last7days as of 2026-02-10)."""
    return DateRange(date(2026, 2, 4), date(2026, 2, 10))


@pytest.fixture
def eligible_row() -> dict[str, Any]:
    """A flattened CRM row that passes both predicates."""
    return {
        "subscription_deleted": 0,
        "invoice_deleted": 0,
        "invoice_id": 123,
        "invoice_tag": None,
        "tracking_id_4": "camp_1",
        "tracking_id_2": "adset_1",
        "tracking_id": "ad_1",
        "source": "adwords",
    }
