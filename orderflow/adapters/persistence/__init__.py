"""
SQL persistence adapters (SQLAlchemy 2.0, sync engine driven from worker threads).
"""
