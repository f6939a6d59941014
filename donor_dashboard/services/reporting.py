"""Reporting engine: time-series and categorical rollups for the dashboard.

All aggregation runs over :class:`CanonicalDonation` rows from the
:class:`DonationSourceAdapter`, so both physical sources contribute and
nothing here knows which table a row came from.
"""

from __future__ import annotations

import calendar
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from donor_dashboard.core.exceptions import BadRequestError
from donor_dashboard.core.response import money, percent, utcnow
from donor_dashboard.repositories.connection import ConnectionRepository
from donor_dashboard.repositories.donation import DonationFilters
from donor_dashboard.services.donation_source import CanonicalDonation, DonationSourceAdapter

logger = logging.getLogger(__name__)

# (upper bound exclusive, label); the last bucket is open ended
AMOUNT_BUCKETS = (
    (25, "$0-$24"),
    (50, "$25-$49"),
    (100, "$50-$99"),
    (250, "$100-$249"),
    (500, "$250-$499"),
    (1000, "$500-$999"),
    (None, "$1000+"),
)

CHART_TYPES = (
    "donations_over_time",
    "donations_by_hour",
    "donations_by_day_of_week",
    "donations_by_amount_range",
    "donation_types",
    "top_donors",
    "monthly_comparison",
    "recent_donations",
)

# rolling windows in days; "today" and "all" are handled separately
PERIOD_DAYS = {
    "week": 7,
    "7days": 7,
    "month": 30,
    "30days": 30,
    "90days": 90,
    "year": 365,
}

TREND_DAYS = 30
REPORT_WINDOW_DAYS = 90
REPORT_MONTHS = 7
KIOSK_LIMIT = 5


def growth_rate(current: float, previous: float) -> float:
    """Percent change of ``current`` over ``previous``.

    A zero previous window is 100% growth if anything came in since, else 0%.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    if current > 0:
        return 100.0
    return 0.0


def amount_bucket(amount: float) -> tuple[int, str]:
    for position, (upper, label) in enumerate(AMOUNT_BUCKETS):
        if upper is None or amount < upper:
            return position, label
    raise AssertionError("unreachable")


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour == 12:
        return "12 PM"
    if hour < 12:
        return f"{hour} AM"
    return f"{hour - 12} PM"


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


@dataclass(frozen=True)
class Window:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True

    def filters(self) -> DonationFilters:
        # Day-granular prefilter in SQL; the exact bound is applied in memory.
        return DonationFilters(
            start_date=self.start.date() if self.start else None,
            end_date=self.end.date() if self.end else None,
        )


def period_windows(period: str, now: datetime) -> tuple[Window, Optional[Window]]:
    """The window for ``period`` and the equal-length window right before it.

    Unknown periods (and ``all``) are unbounded and have no comparison window.
    """
    if period == "today":
        start = datetime.combine(now.date(), time.min)
        return Window(start), Window(start - timedelta(days=1), start)
    days = PERIOD_DAYS.get(period)
    if days is None:
        return Window(), None
    start = now - timedelta(days=days)
    return Window(start), Window(start - timedelta(days=days), start)


def _custom_window(start_date: date, end_date: date) -> Window:
    return Window(
        datetime.combine(start_date, time.min),
        datetime.combine(end_date + timedelta(days=1), time.min),
    )


def _total(rows: list[CanonicalDonation]) -> float:
    return sum(r.amount for r in rows)


def _identified(rows: list[CanonicalDonation]) -> list[CanonicalDonation]:
    return [r for r in rows if r.donor_identifier]


def _unique_donors(rows: list[CanonicalDonation]) -> int:
    return len({r.donor_identifier.lower() if r.donor_email else r.donor_identifier for r in _identified(rows)})


class ReportingEngine:
    def __init__(
        self,
        source: DonationSourceAdapter,
        connections: ConnectionRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._source = source
        self._connections = connections
        self._clock = clock

    async def _rows(self, window: Window) -> list[CanonicalDonation]:
        rows = await self._source.stream(window.filters())
        return [r for r in rows if window.contains(r.created_at)]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def stats(self, period: str = "all") -> dict:
        now = self._clock()
        window, previous_window = period_windows(period, now)
        current = await self._rows(window)
        previous = await self._rows(previous_window) if previous_window else []

        # every period window is open-ended, so today's rows are always in ``current``
        today = Window(datetime.combine(now.date(), time.min))
        today_count = sum(1 for r in current if today.contains(r.created_at))

        total = _total(current)
        trend: OrderedDict[date, list[CanonicalDonation]] = OrderedDict()
        for row in sorted(await self._rows(Window(now - timedelta(days=TREND_DAYS))), key=lambda r: r.created_at):
            trend.setdefault(row.created_at.date(), []).append(row)

        return {
            "period": period,
            "stats": {
                "total_donations": len(current),
                "total_amount": money(total),
                "average_donation": money(total / len(current) if current else 0.0),
                "today_donations": today_count,
                "unique_donors": _unique_donors(current),
                "recurring_donations": sum(1 for r in current if r.is_recurring),
                "receipts_sent": sum(1 for r in current if r.receipt_sent),
            },
            "changes": {
                "amount_change": percent(growth_rate(total, _total(previous))) if previous_window else 0.0,
                "count_change": percent(growth_rate(len(current), len(previous))) if previous_window else 0.0,
            },
            "trend": [
                {"date": day.isoformat(), "count": len(rows), "total": money(_total(rows))}
                for day, rows in trend.items()
            ],
        }

    # ------------------------------------------------------------------
    # Charts
    # ------------------------------------------------------------------

    async def chart(
        self,
        chart_type: str,
        period: str = "30days",
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 10,
    ) -> dict:
        if chart_type not in CHART_TYPES:
            raise BadRequestError(f"Invalid chart type '{chart_type}'")

        now = self._clock()
        if chart_type == "monthly_comparison":
            window = Window(_months_back(now, 12))
        elif start_date and end_date:
            window = _custom_window(start_date, end_date)
        else:
            window, _ = period_windows(period, now)

        rows = sorted(await self._rows(window), key=lambda r: r.created_at)
        builder = getattr(self, f"_chart_{chart_type}")
        kind, data = builder(rows, limit)
        return {"chart_type": chart_type, "period": period, "type": kind, "data": data}

    @staticmethod
    def _chart_donations_over_time(rows, limit):
        days: OrderedDict[date, list[CanonicalDonation]] = OrderedDict()
        for row in rows:
            days.setdefault(row.created_at.date(), []).append(row)
        return "line", [
            {
                "date": day.isoformat(),
                "count": len(group),
                "total": money(_total(group)),
                "average": money(_total(group) / len(group)),
            }
            for day, group in days.items()
        ]

    @staticmethod
    def _chart_donations_by_hour(rows, limit):
        hours: dict[int, list[CanonicalDonation]] = {}
        for row in rows:
            hours.setdefault(row.created_at.hour, []).append(row)
        return "bar", [
            {"hour": hour, "hour_label": f"{hour}:00", "count": len(hours[hour]), "total": money(_total(hours[hour]))}
            for hour in sorted(hours)
        ]

    @staticmethod
    def _chart_donations_by_day_of_week(rows, limit):
        # Sunday first
        days: dict[int, list[CanonicalDonation]] = {}
        for row in rows:
            days.setdefault((row.created_at.weekday() + 1) % 7, []).append(row)
        return "bar", [
            {
                "day": calendar.day_name[(number - 1) % 7],
                "count": len(days[number]),
                "total": money(_total(days[number])),
                "average": money(_total(days[number]) / len(days[number])),
            }
            for number in sorted(days)
        ]

    @staticmethod
    def _chart_donations_by_amount_range(rows, limit):
        buckets: dict[int, list[CanonicalDonation]] = {}
        for row in rows:
            position, _ = amount_bucket(row.amount)
            buckets.setdefault(position, []).append(row)
        grand_total = len(rows)
        return "pie", [
            {
                "range": AMOUNT_BUCKETS[position][1],
                "count": len(buckets[position]),
                "total": money(_total(buckets[position])),
                "percentage": percent(len(buckets[position]) / grand_total * 100),
            }
            for position in sorted(buckets)
        ]

    @staticmethod
    def _chart_donation_types(rows, limit):
        kinds: OrderedDict[str, list[CanonicalDonation]] = OrderedDict((("Recurring", []), ("One-Time", [])))
        for row in rows:
            kinds["Recurring" if row.is_recurring else "One-Time"].append(row)
        return "pie", [
            {"type": kind, "count": len(group), "total": money(_total(group))}
            for kind, group in kinds.items()
            if group
        ]

    @staticmethod
    def _chart_top_donors(rows, limit):
        donors: dict[str, dict] = {}
        for row in _identified(rows):
            entry = donors.setdefault(
                row.donor_identifier,
                {
                    "donor_identifier": row.donor_identifier,
                    "donor_name": row.donor_name or "Anonymous",
                    "donor_email": row.donor_email,
                    "donation_count": 0,
                    "total": 0.0,
                },
            )
            entry["donation_count"] += 1
            entry["total"] += row.amount
            if entry["donor_name"] == "Anonymous" and row.donor_name:
                entry["donor_name"] = row.donor_name
        ranked = sorted(donors.values(), key=lambda e: e["total"], reverse=True)[:limit]
        return "bar", [
            {**{k: v for k, v in entry.items() if k != "total"}, "total_donated": money(entry["total"])}
            for entry in ranked
        ]

    @staticmethod
    def _chart_monthly_comparison(rows, limit):
        months: OrderedDict[str, list[CanonicalDonation]] = OrderedDict()
        for row in rows:
            months.setdefault(row.created_at.strftime("%Y-%m"), []).append(row)
        return "line", [
            {
                "month": key,
                "month_label": group[0].created_at.strftime("%b %Y"),
                "count": len(group),
                "total": money(_total(group)),
                "average": money(_total(group) / len(group)),
            }
            for key, group in months.items()
        ]

    @staticmethod
    def _chart_recent_donations(rows, limit):
        recent = sorted(_identified(rows), key=lambda r: r.created_at, reverse=True)[:limit]
        return "list", [
            {
                "id": row.id,
                "source": row.source,
                "donor_identifier": row.donor_identifier,
                "donor_name": row.donor_name or "Anonymous",
                "donor_email": row.donor_email,
                "amount": money(row.amount),
                "created_at": row.created_at.isoformat(),
            }
            for row in recent
        ]

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def reports(self) -> dict:
        now = self._clock()

        months: OrderedDict[str, list[CanonicalDonation]] = OrderedDict()
        for row in sorted(await self._rows(Window(_months_back(now, 12))), key=lambda r: r.created_at):
            months.setdefault(row.created_at.strftime("%Y-%m"), []).append(row)
        by_month = [
            {"month": group[0].created_at.strftime("%b"), "amount": round(_total(group), 2)}
            for group in list(months.values())[-REPORT_MONTHS:]
        ]

        locations = await self._connections.locations(self._source.scope.organization_ids)
        everything = await self._rows(Window())
        per_location = {location_id: 0.0 for location_id in locations}
        for row in everything:
            if row.location_id in per_location:
                per_location[row.location_id] += row.amount
        kiosks = sorted(per_location.items(), key=lambda item: item[1], reverse=True)[:KIOSK_LIMIT]
        by_kiosk = [
            {"location_id": location_id, "name": locations[location_id] or "Unknown Location", "value": round(value, 2)}
            for location_id, value in kiosks
        ]
        best = by_kiosk[0] if by_kiosk else None

        recent = await self._rows(Window(now - timedelta(days=REPORT_WINDOW_DAYS)))
        hours: dict[int, int] = {}
        for row in recent:
            hours[row.created_at.hour] = hours.get(row.created_at.hour, 0) + 1
        peak_time = "N/A"
        if hours:
            # ties go to the earliest hour
            peak_hour = max(sorted(hours), key=lambda h: hours[h])
            peak_time = f"{format_hour(peak_hour)}-{format_hour((peak_hour + 2) % 24)}"

        previous = await self._rows(
            Window(now - timedelta(days=2 * REPORT_WINDOW_DAYS), now - timedelta(days=REPORT_WINDOW_DAYS))
        )
        return {
            "donations_by_month": by_month,
            "donations_by_kiosk": by_kiosk,
            "insights": {
                "best_performing_kiosk": {
                    "name": best["name"] if best else "N/A",
                    "total": best["value"] if best else 0.0,
                },
                "peak_time": peak_time,
                "growth_rate": percent(growth_rate(_total(recent), _total(previous))),
            },
        }
