"""
Account Manager - Source Package

A local store of credential records ("accounts") and family groups that
reference those accounts as admin or member.

DESIGN PRINCIPLES:
1. Every mutation is a pure Store -> Store function
2. A candidate snapshot is provisional until storage acknowledges it
3. Group invariants hold after every transition (one admin, one group per account)
4. Bad import lines are counted, never fatal
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Account Manager Team"
