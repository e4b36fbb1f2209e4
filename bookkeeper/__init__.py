"""
Bookkeeper - Source Package

A local-first bookkeeping application for small businesses:
transactions, invoices and bills, a product/service catalog,
dashboards and reports.

DESIGN PRINCIPLES:
1. Data is authoritative on-device; cloud sync is optional and best-effort
2. Sensitive fields are encrypted before they touch storage
3. Reports are pure functions over stored records
4. Storage and remote backends are swappable
5. Errors are surfaced, never fatal to the process
"""

__version__ = "1.0.0"
__author__ = "Bookkeeper Team"
