"""
Ingestion

Trade sources for backfill and seeding.
"""
