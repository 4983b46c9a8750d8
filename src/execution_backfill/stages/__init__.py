"""
Pipeline stages.

- download: skip existing pages, fetch the rest through the client pool
- persistence: gzip successful bodies to disk
- aggregator: error log, progress and run summary
"""

from .aggregator import ResultAggregator, RunSummary
from .download import DownloadStage
from .persistence import PersistenceStage

__all__ = ["DownloadStage", "PersistenceStage", "ResultAggregator", "RunSummary"]
