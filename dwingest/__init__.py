"""Bulk CSV and spreadsheet ingestion into SQL Server tables.

Infers column types from a bounded sample, creates or reuses the destination
table, and streams every row into it in bounded batches.
"""

__version__ = "1.0.0"
