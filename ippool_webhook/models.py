"""
Minimal models for Kubernetes AdmissionReview, Namespace and Calico IPPool used
by this webhook. We intentionally parse only the fields we need and ignore
unknowns so that new Kubernetes fields don't break this app.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Namespace (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#namespace-v1-core
- Calico IPPool resource:
  https://docs.tigera.io/calico/latest/reference/resources/ippool
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

POOL_AVAILABLE = "available"
POOL_USED = "used"
STATUS_LABEL = "status"


def _get(d: dict[str, Any], key: str, default):
    # Safe nested getter for dicts
    v = d.get(key)
    return v if isinstance(v, type(default)) else default


def normalize_labels(labels: dict[str, Any] | None) -> dict[str, str]:
    """Lower-case every key and the status value; later duplicates win."""
    normalized: dict[str, str] = {}
    for key, value in (labels or {}).items():
        normalized[str(key).lower()] = str(value)
    if STATUS_LABEL in normalized:
        normalized[STATUS_LABEL] = normalized[STATUS_LABEL].lower()
    return normalized


class Operation(Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNSUPPORTED = "UNSUPPORTED"

    @classmethod
    def parse(cls, raw: Any) -> "Operation":
        value = str(raw or "").upper()
        if value in ("CREATE", "UPDATE", "DELETE"):
            return cls(value)
        return cls.UNSUPPORTED


@dataclass
class Pool:
    name: str
    cidr: str
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None

    @property
    def status(self) -> str | None:
        return self.labels.get(STATUS_LABEL)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Pool":
        meta = _get(d, "metadata", {})
        spec = _get(d, "spec", {})
        rv = meta.get("resourceVersion")
        return Pool(
            name=_get(meta, "name", ""),
            cidr=_get(spec, "cidr", ""),
            labels=normalize_labels(_get(meta, "labels", {})),
            resource_version=str(rv) if rv is not None else None,
        )


@dataclass
class NamespaceModel:
    name: str
    labels: dict[str, str]
    annotations: dict[str, str]

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "NamespaceModel":
        meta = _get(d, "metadata", {})
        return NamespaceModel(
            name=_get(meta, "name", ""),
            labels=_get(meta, "labels", {}),
            annotations=_get(meta, "annotations", {}),
        )


@dataclass
class AdmissionRequestModel:
    uid: str
    kind: str
    name: str
    obj: NamespaceModel | None
    old_obj: NamespaceModel | None
    operation: Operation = Operation.CREATE
    dry_run: bool = False

    @property
    def has_annotations(self) -> bool:
        # The patch path differs when the object carries no annotations map yet
        return self.obj is not None and bool(self.obj.annotations)

    @property
    def namespace_name(self) -> str:
        if self.name:
            return self.name
        for ns in (self.obj, self.old_obj):
            if ns is not None and ns.name:
                return ns.name
        return ""

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        if not isinstance(d, dict):
            return None
        uid = str(d.get("uid", ""))
        kind_raw = d.get("kind")
        kind = str(kind_raw.get("kind", "")) if isinstance(kind_raw, dict) else ""
        obj_raw = d.get("object")
        old_raw = d.get("oldObject")
        obj = NamespaceModel.from_dict(obj_raw) if isinstance(obj_raw, dict) else None
        old_obj = NamespaceModel.from_dict(old_raw) if isinstance(old_raw, dict) else None
        # kind is optional in hand-written reviews; fall back to the object's own kind
        if not kind:
            for raw in (obj_raw, old_raw):
                if isinstance(raw, dict) and isinstance(raw.get("kind"), str):
                    kind = raw["kind"]
                    break
        return AdmissionRequestModel(
            uid=uid,
            kind=kind,
            name=str(d.get("name") or ""),
            obj=obj,
            old_obj=old_obj,
            operation=Operation.parse(d.get("operation")),
            dry_run=d.get("dryRun") is True,
        )


@dataclass
class AdmissionReviewModel:
    request: AdmissionRequestModel

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req_raw = d.get("request")
        req = (
            AdmissionRequestModel.from_dict(req_raw)
            if isinstance(req_raw, dict)
            else None
        )
        if req is None:
            return None
        return AdmissionReviewModel(request=req)
