"""StockLedger — Persistence collaborator interface and implementations."""
from stockledger.store.base import Collection, RecordStore
from stockledger.store.retrying import RetryingRecordStore
from stockledger.store.sql import SqlRecordStore

__all__ = ["Collection", "RecordStore", "RetryingRecordStore", "SqlRecordStore"]
