import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .exceptions import MalformedAnnotation, PoolNotFound
from .models import POOL_AVAILABLE, POOL_USED, STATUS_LABEL, Pool
from .store.interface import PoolRegistry

log = logging.getLogger("ippool-webhook")


def select_available(
    pools: Iterable[Pool], placement_key: str, placement_value: str
) -> Pool | None:
    """First pool, in registry order, placed where asked and still available."""
    key = placement_key.lower()
    for pool in pools:
        if pool.labels.get(key) != placement_value:
            continue
        if pool.labels.get(STATUS_LABEL) == POOL_AVAILABLE:
            return pool
    return None


def parse_pool_annotation(value: str | None) -> str | None:
    """
    Read the pool name from a claim annotation.
    Accepts the current form (a JSON list holding one name) and the legacy bare
    name. Returns None when the annotation is absent or blank.
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    if not raw.startswith("["):
        if any(c in raw for c in '"{},'):
            raise MalformedAnnotation(raw, "not a pool name")
        return raw

    try:
        names = json.loads(raw)
    except ValueError as e:
        raise MalformedAnnotation(raw, "invalid JSON") from e
    if not isinstance(names, list) or len(names) != 1:
        raise MalformedAnnotation(raw, "expected exactly one pool name")
    name = names[0]
    if not isinstance(name, str) or not name.strip():
        raise MalformedAnnotation(raw, "pool name must be a non-empty string")
    return name.strip()


def format_pool_annotation(pool_name: str) -> str:
    return json.dumps([pool_name])


def escape_json_pointer(token: str) -> str:
    # RFC 6901: "~" must be escaped before "/"
    return token.replace("~", "~0").replace("/", "~1")


def patch_pool_annotation(
    annotation_key: str, pool_name: str, has_annotations: bool
) -> list[dict[str, Any]]:
    """Produce a JSONPatch that records the claimed pool on the namespace."""
    value = format_pool_annotation(pool_name)
    if not has_annotations:
        return [
            {
                "op": "add",
                "path": "/metadata/annotations",
                "value": {annotation_key: value},
            }
        ]
    return [
        {
            "op": "add",
            "path": f"/metadata/annotations/{escape_json_pointer(annotation_key)}",
            "value": value,
        }
    ]


def make_admission_response(
    uid: str,
    allowed: bool = True,
    patch: list[dict[str, Any]] | None = None,
    message: str | None = None,
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends to K8s to allow, deny or patch a Namespace."""
    resp: dict[str, Any] = {"uid": uid, "allowed": allowed}

    if message:
        resp["status"] = {"message": message}

    if patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()

    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": resp,
    }


@dataclass
class AuditReport:
    # pool name -> namespaces whose annotation names it
    claims: dict[str, list[str]] = field(default_factory=dict)
    orphaned_pools: list[str] = field(default_factory=list)
    dangling_claims: list[tuple[str, str]] = field(default_factory=list)
    shared_pools: list[str] = field(default_factory=list)
    malformed: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (
            self.orphaned_pools
            or self.dangling_claims
            or self.shared_pools
            or self.malformed
        )


def audit_claims(core: Any, settings: Any, registry: PoolRegistry | None) -> AuditReport | None:
    """Compare namespace claim annotations with pool status labels and log any drift. Never writes."""
    if registry is None:
        log.warning("Pool registry unavailable; skipping audit")
        return None

    log.info("Starting audit of pool claims")
    report = AuditReport()

    try:
        namespaces = core.list_namespace(
            _request_timeout=getattr(settings, "registry_timeout_seconds", 5),
        ).items

        for ns in namespaces:
            if ns.metadata.deletion_timestamp:
                continue
            annotations = ns.metadata.annotations or {}
            try:
                pool_name = parse_pool_annotation(annotations.get(settings.pool_annotation))
            except MalformedAnnotation as e:
                log.warning("Audit: namespace %s: %s", ns.metadata.name, e)
                report.malformed.append(ns.metadata.name)
                continue
            if pool_name:
                report.claims.setdefault(pool_name, []).append(ns.metadata.name)

        used = {
            pool.name
            for pool in registry.list_pools(f"{STATUS_LABEL}={POOL_USED}")
            if pool.status == POOL_USED
        }

        for pool_name, owners in report.claims.items():
            if len(owners) > 1:
                log.error("Audit: pool %s claimed by several namespaces: %s", pool_name, owners)
                report.shared_pools.append(pool_name)
            if pool_name in used:
                continue
            try:
                status = registry.get_pool(pool_name).status
            except PoolNotFound:
                status = "missing"
            if status == POOL_USED:
                # label spelled differently than the server-side selector expects
                used.add(pool_name)
                continue
            for owner in owners:
                log.warning(
                    "Audit: namespace %s claims pool %s whose status is %s",
                    owner,
                    pool_name,
                    status,
                )
                report.dangling_claims.append((owner, pool_name))

        for pool_name in sorted(used - set(report.claims)):
            log.warning("Audit: pool %s is marked used but no namespace claims it", pool_name)
            report.orphaned_pools.append(pool_name)

        log.info(
            "Audited %d claims: orphaned=%d dangling=%d shared=%d malformed=%d",
            len(report.claims),
            len(report.orphaned_pools),
            len(report.dangling_claims),
            len(report.shared_pools),
            len(report.malformed),
        )
        return report

    except Exception as e:
        log.error("Audit error: %s", e)
        return None
