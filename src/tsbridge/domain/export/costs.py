"""
Cost and billing exports (bucket costs).

Calendar-day queries use UTC day boundaries.
"""

from datetime import date, datetime, time, timedelta, timezone

from tsbridge.core.errors import InvalidArgument
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.export.template import BucketExporter, ExportStrategy
from tsbridge.domain.registry import COST_MEASUREMENTS, SUPPORTED_CURRENCIES
from tsbridge.infra.influx.queries import FluxQueryBuilder
from tsbridge.schemas.records import BaseRecord

BUCKET = Bucket.COSTS
BOOKED_MEASUREMENTS = ("costs", "expenses", "billing")

# category -> (measurements, cost_type match, category regex)
CATEGORY_QUERIES: dict[str, tuple[tuple[str, ...], str, str]] = {
    "energy": (("costs",), "energy", "(electricity|power|energy)"),
    "infrastructure": (("costs", "expenses"), "infrastructure", "(hosting|server|cloud)"),
    "license": (("costs", "licenses"), "license", "(software|license)"),
    "maintenance": (("costs", "expenses"), "(maintenance|support)", "(maintenance|support)"),
    "subscription": (("costs", "subscriptions"), "subscription", "(subscription|service)"),
}


def build_costs_query(start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(BUCKET)
        .time_range(start, end)
        .measurements(*COST_MEASUREMENTS)
        .sort("desc")
        .build()
    )


COSTS = ExportStrategy(
    name="costs",
    bucket=BUCKET,
    build_query=build_costs_query,
    description="Cost and billing records",
)


def validate_currency(currency: str) -> str:
    """
    Raises:
        InvalidArgument: If the currency is not supported
    """
    code = (currency or "").strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise InvalidArgument(
            message=f"Unsupported currency: {currency!r}",
            details={"currency": currency},
        )
    return code


def day_bounds(first: date, last: date | None = None) -> tuple[datetime, datetime]:
    """Start of `first` to start of the day after `last` (UTC)."""
    last = last or first
    if last < first:
        raise InvalidArgument(
            message="Date range end must not be before its start",
            details={"start": first.isoformat(), "end": last.isoformat()},
        )
    start = datetime.combine(first, time.min, tzinfo=timezone.utc)
    end = datetime.combine(last + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def current_month_bounds(today: date | None = None) -> tuple[date, date]:
    today = today or datetime.now(timezone.utc).date()
    return today.replace(day=1), today


def previous_month_bounds(today: date | None = None) -> tuple[date, date]:
    today = today or datetime.now(timezone.utc).date()
    end_of_previous = today.replace(day=1) - timedelta(days=1)
    return end_of_previous.replace(day=1), end_of_previous


# =============================================================================
# Variant queries
# =============================================================================

def build_category_query(category: str, start: datetime, end: datetime) -> str:
    if category not in CATEGORY_QUERIES:
        raise InvalidArgument(
            message=f"Unknown cost category: {category!r}",
            details={"category": category},
        )
    measurements, cost_type, category_pattern = CATEGORY_QUERIES[category]
    builder = FluxQueryBuilder.from_bucket(BUCKET).time_range(start, end).measurements(*measurements)
    if cost_type.startswith("("):
        builder.tag_regex("cost_type", cost_type)
    else:
        builder.tag("cost_type", cost_type)
    return builder.tag_regex("category", category_pattern).sort("desc").build()


def build_currency_query(currency: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(BUCKET)
        .time_range(start, end)
        .measurements(*BOOKED_MEASUREMENTS)
        .tag("currency", validate_currency(currency))
        .sort("desc")
        .build()
    )


def build_provider_query(provider: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(BUCKET)
        .time_range(start, end)
        .measurements(*BOOKED_MEASUREMENTS)
        .tag("provider", provider)
        .sort("desc")
        .build()
    )


def build_billing_period_query(billing_period: str, start: datetime, end: datetime) -> str:
    return (
        FluxQueryBuilder.from_bucket(BUCKET)
        .time_range(start, end)
        .measurements("costs", "billing")
        .tag("billing_period", billing_period)
        .sort("desc")
        .build()
    )


def build_date_range_query(first: date, last: date | None = None) -> str:
    start, end = day_bounds(first, last)
    return (
        FluxQueryBuilder.from_bucket(BUCKET)
        .time_range(start, end)
        .measurements(*BOOKED_MEASUREMENTS)
        .sort("desc")
        .build()
    )


def build_date_query(day: date) -> str:
    return build_date_range_query(day)


# =============================================================================
# Variant exports
# =============================================================================

def export_category(exporter: BucketExporter, category: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, f"costs_{category}", build_category_query, category, start=start, end=end
    )


def export_energy_costs(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_category(exporter, "energy", start, end)


def export_infrastructure_costs(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_category(exporter, "infrastructure", start, end)


def export_license_costs(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_category(exporter, "license", start, end)


def export_maintenance_costs(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_category(exporter, "maintenance", start, end)


def export_subscription_costs(exporter: BucketExporter, start=None, end=None) -> list[BaseRecord]:
    return export_category(exporter, "subscription", start, end)


def export_by_currency(exporter: BucketExporter, currency: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, "costs_currency", build_currency_query, currency, start=start, end=end
    )


def export_by_provider(exporter: BucketExporter, provider: str, start=None, end=None) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, "costs_provider", build_provider_query, provider, start=start, end=end
    )


def export_by_billing_period(
    exporter: BucketExporter,
    billing_period: str,
    start=None,
    end=None,
) -> list[BaseRecord]:
    return exporter.export_variant(
        BUCKET, "costs_billing_period", build_billing_period_query, billing_period, start=start, end=end
    )


def export_by_date(exporter: BucketExporter, day: date) -> list[BaseRecord]:
    return exporter.export_query(BUCKET, build_date_query(day), name="costs_date")


def export_by_date_range(exporter: BucketExporter, first: date, last: date) -> list[BaseRecord]:
    return exporter.export_query(BUCKET, build_date_range_query(first, last), name="costs_date_range")


def export_current_month(exporter: BucketExporter, today: date | None = None) -> list[BaseRecord]:
    return export_by_date_range(exporter, *current_month_bounds(today))


def export_previous_month(exporter: BucketExporter, today: date | None = None) -> list[BaseRecord]:
    return export_by_date_range(exporter, *previous_month_bounds(today))
