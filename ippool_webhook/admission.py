"""
Admission decisions for Namespace requests.

CREATE claims a pool and patches the claim annotation onto the namespace.
DELETE releases the pool named by the annotation on the namespace as it
existed at delete time. UPDATE and any other operation pass through.
Requests without an operation count as unsupported. Dry-run requests are
allowed untouched: no pool is claimed or released and no patch is returned.

Release failures on DELETE are fail-open by default: the namespace is deleted
even if its pool could not be returned to the registry, since blocking
namespace deletion on registry errors risks orphaning namespaces. Set
``RELEASE_FAILURE_POLICY=fail-closed`` to deny the deletion instead.
Registry failures on CREATE are never swallowed; the transport turns them into
an HTTP 500, which the API server treats as a failed webhook call.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .allocator import Claimed, PoolAllocator
from .exceptions import MalformedAnnotation, PoolRegistryError
from .helpers import parse_pool_annotation, patch_pool_annotation
from .models import AdmissionRequestModel, Operation

log = logging.getLogger("ippool-webhook")

NAMESPACE_KIND = "Namespace"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    patch: list[dict[str, Any]] | None = None
    message: str | None = None


ALLOW = Decision(allowed=True)


class AdmissionDecisionBuilder:
    def __init__(self, allocator: PoolAllocator, settings: Any) -> None:
        self.allocator = allocator
        self.settings = settings
        self._handlers: dict[Operation, Callable[[AdmissionRequestModel], Decision]] = {
            Operation.CREATE: self._on_create,
            Operation.UPDATE: self._on_passthrough,
            Operation.DELETE: self._on_delete,
            Operation.UNSUPPORTED: self._on_passthrough,
        }
        missing = set(Operation) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No admission handler for {sorted(m.value for m in missing)}")

    def decide(self, req: AdmissionRequestModel) -> Decision:
        if req.kind != NAMESPACE_KIND:
            if self.settings.unsupported_kind_policy == "deny":
                return Decision(
                    allowed=False,
                    message=f"kind {req.kind or 'unknown'} is not handled by this webhook",
                )
            return ALLOW
        if req.dry_run:
            log.info("Dry-run %s ns=%s; skipping pool changes", req.operation.value, req.namespace_name)
            return ALLOW
        return self._handlers[req.operation](req)

    def placement_for(self, req: AdmissionRequestModel) -> tuple[str, str]:
        """Namespace label for the placement key wins over the configured default."""
        key = self.settings.placement_key
        labels = req.obj.labels if req.obj is not None else {}
        value = labels.get(key)
        if isinstance(value, str) and value:
            return key, value
        return key, self.settings.placement_value

    def _on_passthrough(self, req: AdmissionRequestModel) -> Decision:
        return ALLOW

    def _on_create(self, req: AdmissionRequestModel) -> Decision:
        ns = req.namespace_name
        key, value = self.placement_for(req)
        result = self.allocator.claim(key, value, namespace=ns)
        if not isinstance(result, Claimed):
            log.warning("Denying ns=%s: no available subnet for %s=%s", ns, key, value)
            return Decision(
                allowed=False,
                message=f"no available subnet found for {key}={value}",
            )

        patch = patch_pool_annotation(
            self.settings.pool_annotation, result.pool_name, req.has_annotations
        )
        log.info("Assigning pool %s to ns=%s", result.pool_name, ns)
        return Decision(allowed=True, patch=patch)

    def _on_delete(self, req: AdmissionRequestModel) -> Decision:
        # For DELETE, Kubernetes provides the previous state under oldObject
        ns_obj = req.old_obj or req.obj
        ns = req.namespace_name
        annotations = ns_obj.annotations if ns_obj is not None else {}

        try:
            pool_name = parse_pool_annotation(annotations.get(self.settings.pool_annotation))
        except MalformedAnnotation as e:
            log.warning("DELETE ns=%s: %s; nothing to release", ns, e)
            return ALLOW

        if pool_name is None:
            log.info("DELETE ns=%s without pool annotation; allowing", ns)
            return ALLOW

        try:
            outcome = self.allocator.release(pool_name, namespace=ns)
        except PoolRegistryError as e:
            log.error("Could not release pool %s for ns=%s: %s", pool_name, ns, e)
            if self.settings.release_failure_policy == "fail-closed":
                return Decision(
                    allowed=False,
                    message=f"could not release subnet {pool_name} for namespace {ns}; retry later",
                )
            return ALLOW

        log.info("DELETE ns=%s: pool %s %s", ns, pool_name, outcome.value)
        return ALLOW
