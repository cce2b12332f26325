from ..models import Pool


class PoolRegistry:
    def list_pools(self, selector: str) -> list[Pool]:
        """
        Return pools matching a ``key=value`` label selector, in registry order.
        An empty list means nothing matched. Raises RegistryUnavailable.
        """
        raise NotImplementedError

    def get_pool(self, name: str) -> Pool:
        """
        Return one pool. Raises PoolNotFound or RegistryUnavailable.
        """
        raise NotImplementedError

    def set_pool_status(
        self, name: str, status: str, resource_version: str | None = None
    ) -> str | None:
        """
        Set the pool's status label, keeping every other label, and return the
        revision the write produced (None if the registry did not report one).
        When resource_version is given the write only happens if the pool is
        still at that revision. Raises Conflict, PoolNotFound or RegistryUnavailable.
        """
        raise NotImplementedError


class ClaimLedger:
    def recall(self, namespace: str) -> tuple[str, str] | None:
        """
        Return (pool_name, claimed_revision) recorded for namespace, if any.
        """
        raise NotImplementedError

    def record(
        self,
        namespace: str,
        pool_name: str,
        claimed_revision: str,
        ttl_seconds: int | None = None,
    ) -> None:
        """
        Remember that namespace claimed pool_name, leaving it at claimed_revision.
        Expires after ttl_seconds.
        """
        raise NotImplementedError

    def forget(self, namespace: str) -> None:
        raise NotImplementedError
