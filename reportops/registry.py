"""Dimension and metric registry, one map per report family.

Column expressions here are the only SQL identifiers the query builder ever
interpolates. Everything a caller supplies is looked up in these maps first.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Union

from reportops.errors import ReconciliationMismatch, UnknownDimension, UnknownMetric, ValidationError
from reportops.metrics import DerivedMetric, RawMetric


FamilyId = Literal["advertising", "attribution", "geography", "on_page", "session"]
Metric = Union[RawMetric, DerivedMetric]


# Ad network name (lowercased) -> CRM source strings that belong to it.
SOURCE_MAPPING: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "google ads": ("adwords", "google"),
        "facebook": ("facebook", "meta", "fb"),
        "tiktok": ("tiktok",),
    }
)

_NETWORK_NAMES = {"google ads": "Google Ads", "facebook": "Facebook", "tiktok": "TikTok"}


def network_for_source(source: str | None) -> str | None:
    if not source:
        return None
    s = source.strip().lower()
    for network, sources in SOURCE_MAPPING.items():
        if s in sources:
            return _NETWORK_NAMES[network]
    return None


def sources_for_network(network: str) -> list[str]:
    return list(SOURCE_MAPPING.get(network.strip().lower(), ()))


def sources_matching(fragment: str) -> list[str]:
    """CRM sources of every network whose name contains ``fragment`` (case-insensitive, like SQLite LIKE)."""
    needle = fragment.lower()
    return [s for network, sources in SOURCE_MAPPING.items() if needle in _NETWORK_NAMES[network].lower() for s in sources]


@dataclass(frozen=True)
class Dimension:
    id: str
    column: str
    group: str
    label: str | None = None
    temporal: bool = False
    null_check: str | None = None
    # CRM side only: maps a filter value onto the stored values it stands for
    expand: Callable[[str], list[str]] | None = None
    # CRM side only: maps a contains-pattern onto the stored values it matches
    expand_contains: Callable[[str], list[str]] | None = None
    # CRM side only: maps a stored value onto the shared dimension value
    normalize: Callable[[str | None], str | None] | None = None


@dataclass(frozen=True)
class Source:
    """One physical source a family reads: a FROM clause plus its column map."""

    from_clause: str
    date_column: str
    dimensions: Mapping[str, Dimension]
    metrics: tuple[RawMetric, ...] = ()
    # fixed conditions every statement on this source carries
    where: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportFamily:
    id: str
    default_sort: str
    aggregate: Source | None = None
    crm: Source | None = None
    # standalone one-time-sale invoices, counted next to the CRM subscriptions
    ots: Source | None = None
    # name of the eligibility predicate applied to CRM rows
    crm_rule: Literal["baseline", "attribution"] | None = None
    derived: tuple[DerivedMetric, ...] = ()
    metrics: Mapping[str, Metric] = field(default_factory=dict)

    @property
    def primary(self) -> Source:
        source = self.aggregate or self.crm
        if source is None:
            raise ReconciliationMismatch(f"Report family {self.id} has no source", family=self.id)
        return source

    @property
    def dimensions(self) -> Mapping[str, Dimension]:
        return self.primary.dimensions


def _dims(*dims: Dimension) -> Mapping[str, Dimension]:
    return MappingProxyType({d.id: d for d in dims})


def _family(
    family_id: str,
    *,
    default_sort: str,
    aggregate: Source | None = None,
    crm: Source | None = None,
    ots: Source | None = None,
    crm_rule: Literal["baseline", "attribution"] | None = None,
    derived: tuple[DerivedMetric, ...] = (),
) -> ReportFamily:
    if aggregate is None and crm is None:
        raise ValueError(f"{family_id} needs an aggregate or a CRM source")
    if ots is not None and crm is None:
        raise ValueError(f"{family_id} counts one-time sales without a CRM source")
    metrics: dict[str, Metric] = {}
    for source in (aggregate, crm, ots):
        if source is not None:
            metrics.update({m.id: m for m in source.metrics})
    for d in derived:
        if d.numerator not in metrics or d.denominator not in metrics:
            raise ValueError(f"{family_id}.{d.id} refers to an unregistered raw metric")
        metrics[d.id] = d
    if default_sort not in metrics:
        raise ValueError(f"{family_id} default sort {default_sort} is not a metric")
    dimension_sets = [set(s.dimensions) for s in (aggregate, crm, ots) if s is not None]
    if any(ids != dimension_sets[0] for ids in dimension_sets):
        raise ValueError(f"{family_id} sources disagree on dimension ids")
    return ReportFamily(
        id=family_id,
        default_sort=default_sort,
        aggregate=aggregate,
        crm=crm,
        ots=ots,
        crm_rule=crm_rule,
        derived=derived,
        metrics=MappingProxyType(metrics),
    )


# ── Advertising (ad spend) ─────────────────────────────────────────────────────

_AD_METRICS = (
    RawMetric("cost", "SUM(cost)", money=True),
    RawMetric("clicks", "SUM(clicks)"),
    RawMetric("impressions", "SUM(impressions)"),
    RawMetric("conversions", "SUM(conversions)"),
)

_AD_DERIVED = (
    DerivedMetric("ctr", "clicks", "impressions"),
    DerivedMetric("cpc", "cost", "clicks", money=True),
    DerivedMetric("cpm", "cost", "impressions", scale=1000.0, money=True),
    DerivedMetric("conversion_rate", "conversions", "impressions"),
)

_AD_SOURCE = Source(
    from_clause="ad_spend",
    date_column="date",
    dimensions=_dims(
        Dimension("network", "network", "Advertising"),
        Dimension("campaign", "campaign_id", "Advertising", label="campaign_name"),
        Dimension("adset", "adset_id", "Advertising", label="adset_name"),
        Dimension("ad", "ad_id", "Advertising", label="ad_name"),
        Dimension("date", "date", "Time", temporal=True),
    ),
    metrics=_AD_METRICS,
)

# ── CRM ────────────────────────────────────────────────────────────────────────

_CRM_METRICS = (
    RawMetric("customers"),
    RawMetric("subscriptions"),
    RawMetric("trials"),
    RawMetric("trials_approved"),
    RawMetric("upsells"),
    RawMetric("upsells_approved"),
)

_OTS_METRICS = (
    RawMetric("ots"),
    RawMetric("ots_approved"),
)

# upsell invoices point at their parent through the tag; the exact id match is
# checked again in Python (parent-sub-id=1 also matches the pattern for 12)
_CRM_FROM = """subscription s
      LEFT JOIN customer c ON c.id = s.customer_id
      LEFT JOIN invoice i ON i.subscription_id = s.id AND i.type = 1
      LEFT JOIN invoice uo ON uo.customer_id = s.customer_id
        AND uo.tag LIKE '%parent-sub-id=' || s.id || '%'
      LEFT JOIN source sr ON sr.id = s.source_id
      LEFT JOIN product p ON p.id = s.product_id"""

_OTS_FROM = """invoice i
      LEFT JOIN customer c ON c.id = i.customer_id
      LEFT JOIN source sr ON sr.id = i.source_id
      LEFT JOIN product p ON p.id = i.product_id"""

_UNMAPPED_SOURCE = "(sr.source IS NULL OR LOWER(sr.source) NOT IN ({}))".format(
    ", ".join(f"'{s}'" for sources in SOURCE_MAPPING.values() for s in sources)
)

_NETWORK = Dimension(
    "network",
    "LOWER(sr.source)",
    "Advertising",
    null_check=_UNMAPPED_SOURCE,
    expand=sources_for_network,
    expand_contains=sources_matching,
    normalize=network_for_source,
)

_COUNTRY = Dimension("country", "c.country", "Geography", null_check="(c.country IS NULL OR c.country = '')")


def _tracking_dims(alias: str, date_column: str) -> Mapping[str, Dimension]:
    return _dims(
        _NETWORK,
        Dimension("campaign", f"{alias}.tracking_id_4", "Advertising"),
        Dimension("adset", f"{alias}.tracking_id_2", "Advertising"),
        Dimension("ad", f"{alias}.tracking_id", "Advertising"),
        Dimension("date", date_column, "Time", temporal=True),
    )


def _geography_dims(date_column: str) -> Mapping[str, Dimension]:
    return _dims(
        _COUNTRY,
        Dimension("product", "p.product_name", "Product"),
        Dimension("source", "sr.source", "Traffic"),
        Dimension("date", date_column, "Time", temporal=True),
    )


_CRM_TRACKING_SOURCE = Source(
    from_clause=_CRM_FROM,
    date_column="DATE(s.date_create)",
    dimensions=_tracking_dims("s", "DATE(s.date_create)"),
    metrics=_CRM_METRICS,
)

_CRM_GEOGRAPHY_SOURCE = Source(
    from_clause=_CRM_FROM,
    date_column="DATE(s.date_create)",
    dimensions=_geography_dims("DATE(s.date_create)"),
    metrics=_CRM_METRICS,
)

# one-time sales: type 3 invoices with no subscription, tracked on the invoice itself
_OTS_TRACKING_SOURCE = Source(
    from_clause=_OTS_FROM,
    date_column="DATE(i.order_date)",
    dimensions=_tracking_dims("i", "DATE(i.order_date)"),
    metrics=_OTS_METRICS,
    where=("i.type = 3",),
)

_OTS_GEOGRAPHY_SOURCE = Source(
    from_clause=_OTS_FROM,
    date_column="DATE(i.order_date)",
    dimensions=_geography_dims("DATE(i.order_date)"),
    metrics=_OTS_METRICS,
    where=("i.type = 3",),
)

_CRM_DERIVED = (
    DerivedMetric("approval_rate", "trials_approved", "subscriptions"),
    DerivedMetric("upsell_approval_rate", "upsells_approved", "upsells"),
    DerivedMetric("ots_approval_rate", "ots_approved", "ots"),
)

# ── On-page behaviour ──────────────────────────────────────────────────────────

_PAGE_SOURCE = Source(
    from_clause="page_views",
    date_column="DATE(created_at)",
    dimensions=_dims(
        Dimension("url_path", "url_path", "Page"),
        Dimension("page_type", "page_type", "Page"),
        Dimension("utm_source", "utm_source", "Traffic"),
        Dimension("device_type", "device_type", "Device"),
        Dimension("country_code", "country_code", "Geography"),
        Dimension("date", "DATE(created_at)", "Time", temporal=True),
    ),
    metrics=(
        RawMetric("page_views", "COUNT(*)"),
        RawMetric("unique_visitors", "COUNT(DISTINCT visitor_id)"),
        RawMetric("measured_views", "COUNT(active_time_s)"),
        RawMetric("bounces", "SUM(CASE WHEN active_time_s < 5 THEN 1 ELSE 0 END)"),
        RawMetric("active_time", "SUM(active_time_s)"),
        RawMetric("scroll_past_hero", "SUM(hero_scroll_passed)"),
        RawMetric("form_views", "SUM(form_view)"),
    ),
)

# ── Sessions ───────────────────────────────────────────────────────────────────

_SESSION_SOURCE = Source(
    from_clause="sessions",
    date_column="DATE(session_start)",
    dimensions=_dims(
        Dimension("entry_url_path", "entry_url_path", "Page"),
        Dimension("entry_utm_source", "entry_utm_source", "Traffic"),
        Dimension("entry_device_type", "entry_device_type", "Device"),
        Dimension("entry_country_code", "entry_country_code", "Geography"),
        Dimension("visit_number", "visit_number", "Visitor"),
        Dimension("date", "DATE(session_start)", "Time", temporal=True),
    ),
    metrics=(
        RawMetric("sessions", "COUNT(*)"),
        RawMetric("bounced_sessions", "SUM(bounced)"),
        RawMetric("session_page_views", "SUM(page_views)"),
        RawMetric("active_time", "SUM(active_time_s)"),
    ),
)


FAMILIES: Mapping[str, ReportFamily] = MappingProxyType(
    {
        "advertising": _family("advertising", default_sort="cost", aggregate=_AD_SOURCE, derived=_AD_DERIVED),
        "attribution": _family(
            "attribution",
            default_sort="cost",
            aggregate=_AD_SOURCE,
            crm=_CRM_TRACKING_SOURCE,
            ots=_OTS_TRACKING_SOURCE,
            crm_rule="attribution",
            derived=_AD_DERIVED + _CRM_DERIVED + (DerivedMetric("real_cpa", "cost", "trials_approved", money=True),),
        ),
        "geography": _family(
            "geography",
            default_sort="subscriptions",
            crm=_CRM_GEOGRAPHY_SOURCE,
            ots=_OTS_GEOGRAPHY_SOURCE,
            crm_rule="baseline",
            derived=_CRM_DERIVED,
        ),
        "on_page": _family(
            "on_page",
            default_sort="page_views",
            aggregate=_PAGE_SOURCE,
            derived=(
                DerivedMetric("bounce_rate", "bounces", "measured_views"),
                DerivedMetric("avg_active_time", "active_time", "measured_views"),
                DerivedMetric("scroll_rate", "scroll_past_hero", "page_views"),
                DerivedMetric("form_view_rate", "form_views", "page_views"),
            ),
        ),
        "session": _family(
            "session",
            default_sort="sessions",
            aggregate=_SESSION_SOURCE,
            derived=(
                DerivedMetric("bounce_rate", "bounced_sessions", "sessions"),
                DerivedMetric("pages_per_session", "session_page_views", "sessions"),
                DerivedMetric("avg_session_time", "active_time", "sessions"),
            ),
        ),
    }
)


def get_family(family: str) -> ReportFamily:
    try:
        return FAMILIES[family]
    except KeyError:
        raise ValidationError(f"family must be one of: {', '.join(FAMILIES)}") from None


def get_dimension(family: str, dimension_id: str, *, source: Source | None = None) -> Dimension:
    dims = source.dimensions if source is not None else get_family(family).dimensions
    try:
        return dims[dimension_id]
    except KeyError:
        raise UnknownDimension(family, dimension_id) from None


def resolve_column(family: str, dimension_id: str) -> str:
    return get_dimension(family, dimension_id).column


def get_metric(family: str, metric_id: str) -> Metric:
    try:
        return get_family(family).metrics[metric_id]
    except KeyError:
        raise UnknownMetric(family, metric_id) from None


def dimensions_for(family: str) -> list[str]:
    return list(get_family(family).dimensions)


def metrics_for(family: str) -> list[str]:
    return list(get_family(family).metrics)
