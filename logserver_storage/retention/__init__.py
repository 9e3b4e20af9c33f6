"""
Retention policies and the purge service that enforces them.
"""

from .policy_store import (
    UNLIMITED_RETENTION,
    InMemoryRetentionPolicyStore,
    JsonFileRetentionPolicyStore,
    RetentionPolicy,
    RetentionPolicyStore,
)
from .service import PurgeAllResult, RetentionService, TenantPurgeResult

__all__ = [
    "UNLIMITED_RETENTION",
    "RetentionPolicy",
    "RetentionPolicyStore",
    "InMemoryRetentionPolicyStore",
    "JsonFileRetentionPolicyStore",
    "RetentionService",
    "TenantPurgeResult",
    "PurgeAllResult",
]
