"""
Data retention service.

Applies each tenant's retention policy by purging entries whose server-side
creation time is older than the policy allows. Intended to be driven by an
external scheduler through ``purge_all_tenants``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from ..adapters.factory import StorageAdapterFactory
from ..config import ServerSettings
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..models import now_ms
from .policy_store import RetentionPolicyStore

logger = StorageLoggerAdapter(get_storage_logger("retention"), {})


@dataclass
class TenantPurgeResult:
    success: bool
    purged_count: int = 0
    error: str | None = None


@dataclass
class PurgeAllResult:
    success: bool
    total_purged: int = 0
    results: dict[str, TenantPurgeResult] = field(default_factory=dict)
    error: str | None = None


class RetentionService:
    """
    Purges expired entries per tenant.

    Each tenant's entries live in the adapter whose namespace is the tenant
    id. Failures are reported in the returned results instead of raised so
    one broken tenant does not stop the sweep.
    """

    def __init__(
        self,
        policy_store: RetentionPolicyStore,
        factory: StorageAdapterFactory,
        settings: ServerSettings | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.policy_store = policy_store
        self.factory = factory
        self.settings = settings or policy_store.settings
        self._clock = clock

    async def purge_expired_logs(self, tenant_id: str, batch_size: int | None = None) -> TenantPurgeResult:
        """Purge one batch of expired entries for a tenant."""
        batch_size = batch_size or self.settings.purge_batch_size
        log = logger.bind(tenant_id=tenant_id)
        try:
            log.info(f"Purging expired logs for tenant {tenant_id}")

            policy = await self.policy_store.get_retention_policy(tenant_id)
            if policy is None or policy.unlimited:
                log.info(f"No retention policy or unlimited retention for tenant {tenant_id}")
                return TenantPurgeResult(success=True)

            adapter = self.factory.get_adapter(tenant_id)
            cutoff = self._clock() - policy.retention_period_ms
            result = await adapter.purge_expired_logs(cutoff, batch_size)

            log.info(f"Purged {result.purged_count} expired logs for tenant {tenant_id}")
            return TenantPurgeResult(success=True, purged_count=result.purged_count)
        except Exception as e:
            log.error(f"Error purging expired logs for tenant {tenant_id}: {e}", exc_info=True)
            return TenantPurgeResult(success=False, error=str(e))

    async def purge_all_tenants(self, batch_size: int | None = None) -> PurgeAllResult:
        """Purge one batch for every tenant that has a retention policy."""
        batch_size = batch_size or self.settings.purge_batch_size
        try:
            logger.info("Purging expired logs for all tenants")
            tenants = await self.policy_store.get_all_tenants_with_policies()
        except Exception as e:
            logger.error(f"Error listing tenants with retention policies: {e}", exc_info=True)
            return PurgeAllResult(success=False, error=str(e))

        outcome = PurgeAllResult(success=True)
        for tenant_id in tenants:
            result = await self.purge_expired_logs(tenant_id, batch_size)
            outcome.results[tenant_id] = result
            if result.success:
                outcome.total_purged += result.purged_count

        logger.info(f"Purged {outcome.total_purged} expired logs across all tenants")
        return outcome
