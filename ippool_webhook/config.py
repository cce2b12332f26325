import os
from dataclasses import dataclass
from typing import Literal

FailurePolicy = Literal["fail-open", "fail-closed"]
KindPolicy = Literal["allow", "deny"]


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except Exception:
        return default


def _parse_bool(name: str, default: bool) -> bool:
    val = _get_env(name, "true" if default else "false")
    return val.lower() in ("1", "true", "yes")


def _parse_failure_policy(
    name: str, default: FailurePolicy = "fail-open"
) -> FailurePolicy:
    val = _get_env(name, default).lower().replace("_", "-")
    return val if val in ("fail-open", "fail-closed") else default


def _parse_kind_policy(name: str, default: KindPolicy = "allow") -> KindPolicy:
    val = _get_env(name, default).lower()
    return val if val in ("allow", "deny") else default


def parse_selector(raw: str) -> tuple[str, str] | None:
    """Split a single ``key=value`` label selector; None if it is not one."""
    key, sep, value = raw.partition("=")
    key = key.strip()
    value = value.strip()
    if not sep or not key or not value or "," in raw or "!" in key:
        return None
    return key, value


@dataclass(frozen=True)
class Settings:
    # Placement
    placement_key: str = "location"
    placement_value: str = "default"

    # Behavior
    registry_timeout_seconds: int = 5
    claim_max_attempts: int = 3
    release_failure_policy: FailurePolicy = "fail-open"
    unsupported_kind_policy: KindPolicy = "allow"
    redis_url: str = ""
    claim_ledger_ttl_seconds: int = 86400
    app_env: str = "production"
    audit_enabled: bool = True
    audit_interval_seconds: int = 1800

    # Keys (labels/annotations)
    pool_annotation: str = "cni.projectcalico.org/ipv4pools"

    # Pool registry resource
    pool_group: str = "crd.projectcalico.org"
    pool_version: str = "v1"
    pool_plural: str = "ippools"

    # Transport
    tls_cert_file: str = "tls/tls.crt"
    tls_key_file: str = "tls/tls.key"
    port: int = 8443

    @property
    def placement_selector(self) -> str:
        return f"{self.placement_key}={self.placement_value}"


def load() -> Settings:
    placement = parse_selector(_get_env("PLACEMENT_SELECTOR", "location=default"))
    if placement is None:
        placement = ("location", "default")
    return Settings(
        placement_key=placement[0],
        placement_value=placement[1],
        registry_timeout_seconds=max(1, _parse_int("REGISTRY_TIMEOUT_SECONDS", 5)),
        claim_max_attempts=max(1, _parse_int("CLAIM_MAX_ATTEMPTS", 3)),
        release_failure_policy=_parse_failure_policy(
            "RELEASE_FAILURE_POLICY", "fail-open"
        ),
        unsupported_kind_policy=_parse_kind_policy("UNSUPPORTED_KIND_POLICY", "allow"),
        redis_url=_get_env("REDIS_URL", ""),
        claim_ledger_ttl_seconds=_parse_int("CLAIM_LEDGER_TTL_SECONDS", 86400),
        app_env=_get_env("APP_ENV", "production"),
        audit_enabled=_parse_bool("AUDIT_ENABLED", True),
        audit_interval_seconds=_parse_int("AUDIT_INTERVAL_SECONDS", 1800),

        pool_annotation=_get_env("POOL_ANNOTATION", "cni.projectcalico.org/ipv4pools"),

        pool_group=_get_env("POOL_GROUP", "crd.projectcalico.org"),
        pool_version=_get_env("POOL_VERSION", "v1"),
        pool_plural=_get_env("POOL_PLURAL", "ippools"),

        tls_cert_file=_get_env("TLS_CERT_FILE", "tls/tls.crt"),
        tls_key_file=_get_env("TLS_KEY_FILE", "tls/tls.key"),
        port=_parse_int("PORT", 8443),
    )


# Singleton settings for app usage (optional in tests)
settings: Settings = load()
