"""
Claim and release of IP pools.

A pool moves Available -> Used on claim and Used -> Available on release.
All coordination goes through the registry's revision check: a claim writes
``status=used`` only if the pool is still at the revision it was listed at, so
of several webhook replicas racing for the same pool exactly one write lands
and the others re-list and pick again.
"""
import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import Conflict, PoolNotFound, RegistryUnavailable
from .helpers import select_available
from .models import POOL_AVAILABLE, POOL_USED
from .store.interface import ClaimLedger, PoolRegistry

log = logging.getLogger("ippool-webhook")


@dataclass(frozen=True)
class Claimed:
    pool_name: str


@dataclass(frozen=True)
class NoPoolAvailable:
    selector: str


ClaimResult = Claimed | NoPoolAvailable


class ReleaseOutcome(Enum):
    RELEASED = "released"
    ALREADY_RELEASED = "already-released"


class PoolAllocator:
    def __init__(
        self,
        registry: PoolRegistry,
        max_attempts: int = 3,
        ledger: ClaimLedger | None = None,
        ledger_ttl_seconds: int | None = None,
    ) -> None:
        self.registry = registry
        self.max_attempts = max(1, int(max_attempts))
        self.ledger = ledger
        self.ledger_ttl_seconds = ledger_ttl_seconds

    def claim(
        self, placement_key: str, placement_value: str, namespace: str | None = None
    ) -> ClaimResult:
        """
        Mark one available pool in the placement domain as used.

        Returns NoPoolAvailable when every matching pool is taken. Raises
        RegistryUnavailable when the registry fails or the claim keeps losing
        races after max_attempts.
        """
        selector = f"{placement_key}={placement_value}"

        previous = self._recall(namespace)
        if previous is not None:
            log.info("Reusing pool %s already claimed for ns=%s", previous, namespace)
            return Claimed(previous)

        for attempt in range(1, self.max_attempts + 1):
            pools = self.registry.list_pools(selector)
            pool = select_available(pools, placement_key, placement_value)
            if pool is None:
                log.info(
                    "No available pool among %d listed for %s (attempt %d)",
                    len(pools),
                    selector,
                    attempt,
                )
                return NoPoolAvailable(selector)

            try:
                claimed_version = self.registry.set_pool_status(
                    pool.name, POOL_USED, resource_version=pool.resource_version
                )
            except (Conflict, PoolNotFound) as e:
                log.info(
                    "Claim of pool %s lost (attempt %d/%d): %s",
                    pool.name,
                    attempt,
                    self.max_attempts,
                    e,
                )
                continue

            log.info("Claimed pool %s (%s) for ns=%s", pool.name, pool.cidr, namespace)
            self._record(namespace, pool.name, claimed_version)
            return Claimed(pool.name)

        raise RegistryUnavailable(
            f"could not claim a pool for {selector} after {self.max_attempts} attempts"
        )

    def release(self, pool_name: str, namespace: str | None = None) -> ReleaseOutcome:
        """Mark the pool available again. Releasing a free or missing pool is a no-op."""
        try:
            outcome = self._release(pool_name)
        finally:
            self._forget(namespace)
        return outcome

    def _release(self, pool_name: str) -> ReleaseOutcome:
        for attempt in range(1, self.max_attempts + 1):
            try:
                pool = self.registry.get_pool(pool_name)
            except PoolNotFound:
                log.info("Pool %s no longer exists; nothing to release", pool_name)
                return ReleaseOutcome.ALREADY_RELEASED

            if pool.status == POOL_AVAILABLE:
                log.info("Pool %s already available", pool_name)
                return ReleaseOutcome.ALREADY_RELEASED

            try:
                self.registry.set_pool_status(
                    pool_name, POOL_AVAILABLE, resource_version=pool.resource_version
                )
            except Conflict:
                log.info(
                    "Release of pool %s conflicted (attempt %d/%d)",
                    pool_name,
                    attempt,
                    self.max_attempts,
                )
                continue
            except PoolNotFound:
                return ReleaseOutcome.ALREADY_RELEASED

            log.info("Released pool %s", pool_name)
            return ReleaseOutcome.RELEASED

        raise RegistryUnavailable(
            f"could not release pool {pool_name} after {self.max_attempts} attempts"
        )

    def _recall(self, namespace: str | None) -> str | None:
        if self.ledger is None or not namespace:
            return None
        try:
            entry = self.ledger.recall(namespace)
        except Exception as e:
            log.warning("Claim ledger lookup failed for ns=%s: %s", namespace, e)
            return None
        if entry is None:
            return None
        pool_name, claimed_version = entry

        # Ownership holds only while nobody has written the pool since our claim
        try:
            pool = self.registry.get_pool(pool_name)
        except PoolNotFound:
            return None
        if pool.status != POOL_USED or pool.resource_version != claimed_version:
            log.info(
                "Ledger entry %s@%s for ns=%s is stale (pool now %s@%s)",
                pool_name,
                claimed_version,
                namespace,
                pool.status,
                pool.resource_version,
            )
            return None
        return pool_name

    def _record(
        self, namespace: str | None, pool_name: str, claimed_version: str | None
    ) -> None:
        if self.ledger is None or not namespace or claimed_version is None:
            return
        try:
            self.ledger.record(
                namespace, pool_name, claimed_version, ttl_seconds=self.ledger_ttl_seconds
            )
        except Exception as e:
            log.warning("Could not record claim of %s for ns=%s: %s", pool_name, namespace, e)

    def _forget(self, namespace: str | None) -> None:
        if self.ledger is None or not namespace:
            return
        try:
            self.ledger.forget(namespace)
        except Exception as e:
            log.warning("Could not forget claim for ns=%s: %s", namespace, e)
