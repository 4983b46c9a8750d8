"""
Execution Backfill - resumable bulk extraction of historical trade executions.

Walks the execution ID space backward page by page, spreads requests across a
rotating set of HTTP proxies and stores every page as a gzip artifact on disk.
"""

__version__ = "1.0.0"
__author__ = "Execution Backfill Team"
