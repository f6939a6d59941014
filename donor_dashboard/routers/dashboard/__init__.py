"""Dashboard router package — all /api/dashboard/* endpoints live here.

Files:
  auth.py       — session introspection and logout
  admin.py      — super-admin impersonation and organization listing
  donations.py  — canonical donation listing, detail, transaction edit, export
  donors.py     — donor aggregates, edits, merge, duplicates, change history
  reports.py    — stats, charts, reports, organizations, audit-table setup

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to donor_dashboard/services/.
"""

from fastapi import APIRouter

from donor_dashboard.routers.dashboard.admin import router as admin_router
from donor_dashboard.routers.dashboard.auth import router as auth_router
from donor_dashboard.routers.dashboard.donations import router as donations_router
from donor_dashboard.routers.dashboard.donors import router as donors_router
from donor_dashboard.routers.dashboard.reports import router as reports_router

router = APIRouter(prefix="/api/dashboard")
router.include_router(auth_router)
router.include_router(admin_router)
router.include_router(donations_router)
router.include_router(donors_router)
router.include_router(reports_router)
