"""
Budget Desk - Source Package

A budgeting and project workspace for small businesses whose data lives
in a hosted Postgres backend protected by row-level security.

DESIGN PRINCIPLES:
1. The backend owns the data, this package owns the arithmetic
2. Every user works inside exactly one active organization
3. Fail early, fail visibly
4. Every tenancy change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Desk Team"
