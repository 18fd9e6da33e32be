"""Per-user persistence of structured records."""

import logging

from ..config import StorageConfig
from .base import RecordStore
from .local import LocalRecordStore

logger = logging.getLogger(__name__)


def create_store(config: StorageConfig) -> RecordStore:
    """Build the record store selected by ``config.backend``."""
    if config.backend == "local":
        logger.info(f"Using local record store at {config.data_dir}")
        return LocalRecordStore(config)
    if config.backend == "firestore":
        from .firestore import FirestoreRecordStore

        logger.info("Using Firestore record store")
        return FirestoreRecordStore.from_config(config)
    raise ValueError(f"Unknown storage backend: {config.backend!r}")


__all__ = ["LocalRecordStore", "RecordStore", "create_store"]
