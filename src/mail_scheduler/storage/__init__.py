"""Persistence adapters backed by JSON documents."""

from .accounts import LEGACY_ACCOUNT_ID, AccountParams, JsonAccountStore
from .history import HistoryLog
from .task_store import JsonTaskStore

__all__ = [
    "AccountParams",
    "HistoryLog",
    "JsonAccountStore",
    "JsonTaskStore",
    "LEGACY_ACCOUNT_ID",
]
