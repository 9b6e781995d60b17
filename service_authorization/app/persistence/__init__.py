"""
Persistence package for the Authorization Service.

Stores one row per rule in a relational table through SQLAlchemy so that
a restarted service rebuilds exactly the same rule set.
"""
