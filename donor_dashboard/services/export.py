"""Donation export (CSV / JSON) over the canonical stream."""

from __future__ import annotations

import csv
import io
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from donor_dashboard.core.response import money, utcnow
from donor_dashboard.repositories.donation import DonationFilters
from donor_dashboard.services.donation_source import CanonicalDonation, DonationSourceAdapter, sort_donations

CSV_HEADERS = [
    "Date",
    "Amount",
    "Currency",
    "Donor Name",
    "Donor Email",
    "Payment ID",
    "Order ID",
    "Donation Type",
    "Is Recurring",
    "Is Custom Amount",
    "Receipt Sent",
    "Status",
]


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _csv_row(d: CanonicalDonation) -> list[str]:
    return [
        d.created_at.isoformat(),
        money(d.amount),
        d.currency,
        d.donor_name or "Anonymous",
        d.donor_email or "",
        d.payment_id or "",
        d.order_id or "",
        d.donation_type,
        _yes_no(d.is_recurring),
        _yes_no(d.is_custom_amount),
        _yes_no(d.receipt_sent),
        d.payment_status,
    ]


@dataclass
class ExportFile:
    filename: str
    media_type: str
    content: str


class ExportService:
    def __init__(self, source: DonationSourceAdapter, clock: Callable[[], datetime] = utcnow):
        self._source = source
        self._clock = clock

    async def donations(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_anonymous: bool = False,
    ) -> list[CanonicalDonation]:
        rows = await self._source.stream(DonationFilters(start_date=start_date, end_date=end_date))
        if not include_anonymous:
            rows = [r for r in rows if r.donor_email]
        return sort_donations(rows, "created_at", descending=True)

    async def export_json(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_anonymous: bool = False,
    ) -> tuple[list[CanonicalDonation], dict]:
        rows = await self.donations(start_date, end_date, include_anonymous)
        summary = {
            "exported_at": self._clock().isoformat(),
            "total_count": len(rows),
            "total_amount": money(sum(r.amount for r in rows)),
        }
        return rows, summary

    async def export_csv(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_anonymous: bool = False,
    ) -> ExportFile:
        rows = await self.donations(start_date, end_date, include_anonymous)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        writer.writerows(_csv_row(d) for d in rows)

        padding = [""] * (len(CSV_HEADERS) - 2)
        writer.writerow([])
        writer.writerow(["Summary", "", *padding])
        writer.writerow(["Total Donations", str(len(rows)), *padding])
        currency = rows[0].currency if rows else "USD"
        writer.writerow(["Total Amount", money(sum(r.amount for r in rows)), currency, *padding[1:]])

        start = start_date.isoformat() if start_date else "all"
        end = end_date.isoformat() if end_date else "now"
        return ExportFile(f"donations-{start}-to-{end}.csv", "text/csv", buffer.getvalue())

