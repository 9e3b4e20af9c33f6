"""
Retention policy storage.

A policy sets how long a tenant keeps log entries. A policy without a log
name is the tenant-wide default; a log-specific policy overrides it for that
log. A period of -1 means unlimited retention.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..config import ServerSettings
from ..exceptions import RetentionPolicyError
from ..file_ops import read_json, write_json_atomic
from ..models import utc_now_iso

logger = logging.getLogger(__name__)

UNLIMITED_RETENTION = -1

PolicyKey = tuple[str, str | None]


@dataclass
class RetentionPolicy:
    """Retention policy for a tenant, or for one log of a tenant."""

    tenant_id: str
    retention_period_ms: int
    log_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    created_by: str | None = None
    updated_by: str | None = None

    @property
    def unlimited(self) -> bool:
        return self.retention_period_ms == UNLIMITED_RETENTION

    @property
    def key(self) -> PolicyKey:
        return (self.tenant_id, self.log_name)

    def to_dict(self) -> dict[str, Any]:
        doc = {
            "tenantId": self.tenant_id,
            "logName": self.log_name,
            "retentionPeriodMs": self.retention_period_ms,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
        }
        return {k: v for k, v in doc.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetentionPolicy:
        return cls(
            tenant_id=data["tenantId"],
            retention_period_ms=data["retentionPeriodMs"],
            log_name=data.get("logName"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            created_by=data.get("createdBy"),
            updated_by=data.get("updatedBy"),
        )


class RetentionPolicyStore(ABC):
    """
    Abstract base for retention policy stores.

    Subclasses provide keyed load/save/remove primitives; lookup fallback and
    limit validation live here.
    """

    def __init__(self, settings: ServerSettings | None = None):
        self.settings = settings or ServerSettings()

    @abstractmethod
    async def _load(self, key: PolicyKey) -> RetentionPolicy | None:
        pass

    @abstractmethod
    async def _save(self, policy: RetentionPolicy) -> None:
        pass

    @abstractmethod
    async def _remove(self, key: PolicyKey) -> bool:
        pass

    @abstractmethod
    async def _all(self) -> list[RetentionPolicy]:
        pass

    async def get_retention_policy(
        self, tenant_id: str, log_name: str | None = None
    ) -> RetentionPolicy | None:
        """Get the policy for a log, falling back to the tenant-wide policy."""
        policy = await self._load((tenant_id, log_name))
        if policy is None and log_name is not None:
            return await self._load((tenant_id, None))
        return policy

    async def set_retention_policy(
        self,
        tenant_id: str,
        retention_period_ms: int,
        log_name: str | None = None,
        user_id: str = "system",
    ) -> RetentionPolicy:
        """
        Create or update a policy.

        Raises:
            RetentionPolicyError: If the period is below -1 or exceeds the
                configured maximum (unless the maximum is unlimited)
        """
        max_period = self.settings.max_retention_period_ms
        if retention_period_ms < UNLIMITED_RETENTION:
            raise RetentionPolicyError(tenant_id, "retention period must be -1 or non-negative")
        if max_period != UNLIMITED_RETENTION and retention_period_ms > max_period:
            raise RetentionPolicyError(
                tenant_id, f"retention period exceeds maximum allowed value of {max_period} ms"
            )

        now = utc_now_iso()
        existing = await self._load((tenant_id, log_name))
        if existing is not None:
            policy = RetentionPolicy(
                tenant_id=tenant_id,
                retention_period_ms=retention_period_ms,
                log_name=log_name,
                created_at=existing.created_at,
                updated_at=now,
                created_by=existing.created_by,
                updated_by=user_id,
            )
        else:
            policy = RetentionPolicy(
                tenant_id=tenant_id,
                retention_period_ms=retention_period_ms,
                log_name=log_name,
                created_at=now,
                updated_at=now,
                created_by=user_id,
                updated_by=user_id,
            )

        await self._save(policy)
        scope = f" and log {log_name}" if log_name else ""
        logger.info(f"Set retention policy for tenant {tenant_id}{scope}: {retention_period_ms} ms")
        return policy

    async def delete_retention_policy(self, tenant_id: str, log_name: str | None = None) -> bool:
        """Delete exactly the addressed policy; the tenant-wide one is kept for log deletes."""
        return await self._remove((tenant_id, log_name))

    async def get_all_tenants_with_policies(self) -> list[str]:
        """Tenant ids that own at least one policy, in first-seen order."""
        return list(dict.fromkeys(policy.tenant_id for policy in await self._all()))

    async def get_logs_with_policies(self, tenant_id: str) -> list[str]:
        """Names of the tenant's logs that carry their own policy."""
        return [
            policy.log_name
            for policy in await self._all()
            if policy.tenant_id == tenant_id and policy.log_name is not None
        ]


class InMemoryRetentionPolicyStore(RetentionPolicyStore):
    """Volatile policy store for tests and single-process deployments."""

    def __init__(self, settings: ServerSettings | None = None):
        super().__init__(settings)
        self._policies: dict[PolicyKey, RetentionPolicy] = {}

    async def _load(self, key: PolicyKey) -> RetentionPolicy | None:
        return self._policies.get(key)

    async def _save(self, policy: RetentionPolicy) -> None:
        self._policies[policy.key] = policy

    async def _remove(self, key: PolicyKey) -> bool:
        return self._policies.pop(key, None) is not None

    async def _all(self) -> list[RetentionPolicy]:
        return list(self._policies.values())


class JsonFileRetentionPolicyStore(RetentionPolicyStore):
    """
    Policy store persisted as one JSON document.

    The file lives at ``<db_path>/retention-policies/policies.json`` and is
    rewritten atomically on every change.
    """

    def __init__(self, db_path: str | Path = "./data", settings: ServerSettings | None = None):
        super().__init__(settings)
        self.path = Path(db_path) / "retention-policies" / "policies.json"

    async def _read_all(self) -> dict[PolicyKey, RetentionPolicy]:
        data = await read_json(self.path, default={})
        policies = [RetentionPolicy.from_dict(doc) for doc in data.get("policies", [])]
        return {policy.key: policy for policy in policies}

    async def _write_all(self, policies: dict[PolicyKey, RetentionPolicy]) -> None:
        await write_json_atomic(
            self.path, {"policies": [policy.to_dict() for policy in policies.values()]}
        )

    async def _load(self, key: PolicyKey) -> RetentionPolicy | None:
        return (await self._read_all()).get(key)

    async def _save(self, policy: RetentionPolicy) -> None:
        policies = await self._read_all()
        policies[policy.key] = policy
        await self._write_all(policies)

    async def _remove(self, key: PolicyKey) -> bool:
        policies = await self._read_all()
        if policies.pop(key, None) is None:
            return False
        await self._write_all(policies)
        return True

    async def _all(self) -> list[RetentionPolicy]:
        return list((await self._read_all()).values())
