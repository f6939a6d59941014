"""Services package — all business logic lives here, never in routers.

Files:
  session.py          — scope resolution, impersonation, connection bootstrap
  donation_source.py  — canonical donation stream over the ledger + legacy receipt log
  donor.py            — donor identity resolver (aggregates, edits, merge, revert, duplicates)
  donor_history.py    — change history ledger (side-channel audit writes)
  reporting.py        — stats, charts and reports rollups
  export.py           — CSV / JSON export

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
