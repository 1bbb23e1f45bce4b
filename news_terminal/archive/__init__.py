"""
Retention: archive and delete items past the retention window.
"""
from news_terminal.archive.retention import (
    DEFAULT_RETENTION_DAYS,
    ArchiveReport,
    RetentionJob,
    retention_cutoff,
)

__all__ = [
    "DEFAULT_RETENTION_DAYS",
    "ArchiveReport",
    "RetentionJob",
    "retention_cutoff",
]
