"""Domain package — all ORM models are imported here so Alembic autogenerate detects them.

Folder intent:
  organization.py  — Organization tenants and provider Connections
  donation.py      — Primary donation ledger and legacy receipt log
  donor_change.py  — Donor identity change log (append-only apart from revert flag)
  mixins.py        — Shared TimestampMixin, OrganizationMixin
"""

from donor_dashboard.domain.donation import Donation, ReceiptLog
from donor_dashboard.domain.donor_change import DonorChange
from donor_dashboard.domain.organization import Connection, Organization

__all__ = [
    "Connection",
    "Donation",
    "DonorChange",
    "Organization",
    "ReceiptLog",
]
