"""
Remote data platform access: contract, filters, change feed and the Supabase adapter.
"""

from livelocal.services.remote.change_feed import ChangeFeedHub
from livelocal.services.remote.contract import (
    ChangeEvent,
    NoRowsError,
    RemoteDataService,
    RemoteServiceError,
    RowDecodeError,
    Subscription,
    UniqueViolationError,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeedHub",
    "NoRowsError",
    "RemoteDataService",
    "RemoteServiceError",
    "RowDecodeError",
    "Subscription",
    "UniqueViolationError",
]
