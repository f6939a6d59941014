"""Routers package — HTTP endpoint definitions.

Files:
  deps.py      — shared dependencies (session token, scope, service wiring)
  dashboard/   — dashboard API routes (/api/dashboard/*)
"""
