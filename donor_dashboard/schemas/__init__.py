"""Pydantic schemas package.

Folder intent:
  common.py    — ApiModel base, Money type, HealthResponse
  session.py   — session, impersonation and organization payloads
  donation.py  — canonical donation listing, detail, transaction edit, export
  donor.py     — donor aggregates, edits, merge, change history, duplicates
"""
