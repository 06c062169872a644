"""
API Blueprints Package

All HTTP route handlers for the application, organized by domain.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================

Customers & Equipment:
- customers.py  : Customers, customer summary, sites
- assets.py     : HVAC equipment, serial number validation
- products.py   : Product catalog
- inventory.py  : Stock items, adjustments, logs, stock value

Work & Billing:
- estimates.py  : Estimates, estimate lines, send/accept/decline/convert
- jobs.py       : Jobs, status changes, invoicing a completed job
- invoices.py   : Invoices, line items, payments, refunds, overdue sweep
- agreements.py : Service agreements, lifecycle, maintenance visits, renewals

Other:
- dashboard.py  : KPIs, alerts, reminders, recent activity
- utils.py      : Phone formatting helper

Every handler opens database.connection.get_db_session() and delegates to a
repository in the root services/ package.
"""

# All blueprints are imported and registered in app/__init__.py
# This file serves as documentation only

__all__ = []
