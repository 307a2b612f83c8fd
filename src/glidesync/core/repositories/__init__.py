"""Data access layer for glidesync."""

from glidesync.core.repositories.base import BaseRepository
from glidesync.core.repositories.connection import ConnectionRepository
from glidesync.core.repositories.mapping import MappingRepository
from glidesync.core.repositories.sync_log import SyncErrorRepository, SyncLogRepository

__all__ = [
    "BaseRepository",
    "ConnectionRepository",
    "MappingRepository",
    "SyncErrorRepository",
    "SyncLogRepository",
]
