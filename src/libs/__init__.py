"""Shared library helpers."""

from src.libs.store_client import (
    StoreAPIError,
    StoreClientError,
    StoreTimeoutError,
    TalentStoreClient,
)

__all__ = [
    "StoreAPIError",
    "StoreClientError",
    "StoreTimeoutError",
    "TalentStoreClient",
]
