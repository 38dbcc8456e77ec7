"""
Cotton - Finance Data Cache

The local data layer of the Cotton finance tracker for solo founders
running several ventures ("projects") at once.

DESIGN PRINCIPLES:
1. One in-memory mirror per collection, shared app-wide
2. Serve fresh data without touching the network
3. Stale data beats a blocked screen
4. Local edits are visible immediately, the next fetch stays authoritative
5. Persistence is best-effort caching, never the system of record
"""

__version__ = "1.0.0"
__author__ = "Cotton Team"
