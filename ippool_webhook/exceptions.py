"""Pool registry and claim annotation exception classes."""


class PoolRegistryError(Exception):
    """Base exception for pool registry operations."""

    pass


class RegistryUnavailable(PoolRegistryError):
    """Registry could not be reached, rejected our credentials, or kept conflicting."""

    pass


class Conflict(PoolRegistryError):
    """Write rejected because the pool changed since it was read."""

    def __init__(self, pool_name: str):
        self.pool_name = pool_name
        super().__init__(f"Pool {pool_name} was modified concurrently")


class PoolNotFound(PoolRegistryError):
    """Pool is not present in the registry."""

    def __init__(self, pool_name: str):
        self.pool_name = pool_name
        super().__init__(f"Pool not found: {pool_name}")


class MalformedAnnotation(ValueError):
    """Namespace claim annotation could not be parsed into a pool name."""

    def __init__(self, value: str, reason: str):
        self.value = value
        super().__init__(f"Malformed pool annotation {value!r}: {reason}")
