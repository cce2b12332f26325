import redis

from .interface import ClaimLedger

KEY_PREFIX = "ippool-claim:"


class RedisClaimLedger(ClaimLedger):
    def __init__(
        self,
        url: str,
        default_ttl_seconds: int = 86400,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
            decode_responses=True,
        )
        self._default_ttl_seconds = max(1, int(default_ttl_seconds))

    @staticmethod
    def _key(namespace: str) -> str:
        return f"{KEY_PREFIX}{namespace}"

    def recall(self, namespace: str) -> tuple[str, str] | None:
        value = self._client.get(self._key(namespace))
        if not value:
            return None
        # stored as pool@revision; Kubernetes names never contain "@"
        pool_name, sep, revision = str(value).rpartition("@")
        if not sep or not pool_name or not revision:
            return None
        return pool_name, revision

    def record(
        self,
        namespace: str,
        pool_name: str,
        claimed_revision: str,
        ttl_seconds: int | None = None,
    ) -> None:
        ttl = (
            self._default_ttl_seconds
            if not ttl_seconds or ttl_seconds <= 0
            else int(ttl_seconds)
        )
        self._client.setex(self._key(namespace), ttl, f"{pool_name}@{claimed_revision}")

    def forget(self, namespace: str) -> None:
        self._client.delete(self._key(namespace))
