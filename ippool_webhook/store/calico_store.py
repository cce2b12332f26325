import copy
import logging
from typing import Any

from kubernetes.client.rest import ApiException

from ..exceptions import Conflict, PoolNotFound, RegistryUnavailable
from ..models import STATUS_LABEL, Pool, normalize_labels
from .interface import PoolRegistry

log = logging.getLogger("ippool-webhook")


class CalicoPoolRegistry(PoolRegistry):
    """Calico IPPool custom objects (cluster scoped) read through CustomObjectsApi."""

    def __init__(
        self,
        api: Any,
        group: str = "crd.projectcalico.org",
        version: str = "v1",
        plural: str = "ippools",
        timeout_seconds: int = 5,
    ) -> None:
        self._api = api
        self._group = group
        self._version = version
        self._plural = plural
        self._timeout = timeout_seconds

    def list_pools(self, selector: str) -> list[Pool]:
        try:
            resp = self._api.list_cluster_custom_object(
                self._group,
                self._version,
                self._plural,
                label_selector=selector,
                _request_timeout=self._timeout,
            )
        except ApiException as e:
            raise RegistryUnavailable(
                f"could not list {self._plural} ({e.status} {e.reason})"
            ) from e
        except Exception as e:
            raise RegistryUnavailable(f"could not list {self._plural}: {e}") from e

        items = resp.get("items") if isinstance(resp, dict) else None
        return [Pool.from_dict(item) for item in items or [] if isinstance(item, dict)]

    def _get_raw(self, name: str) -> dict[str, Any]:
        try:
            return self._api.get_cluster_custom_object(
                self._group,
                self._version,
                self._plural,
                name,
                _request_timeout=self._timeout,
            )
        except ApiException as e:
            if e.status == 404:
                raise PoolNotFound(name) from e
            raise RegistryUnavailable(
                f"could not get pool {name} ({e.status} {e.reason})"
            ) from e
        except Exception as e:
            raise RegistryUnavailable(f"could not get pool {name}: {e}") from e

    def get_pool(self, name: str) -> Pool:
        return Pool.from_dict(self._get_raw(name))

    def set_pool_status(
        self, name: str, status: str, resource_version: str | None = None
    ) -> str | None:
        body = copy.deepcopy(self._get_raw(name))
        metadata = body.setdefault("metadata", {})
        current_version = metadata.get("resourceVersion")
        if resource_version is not None and str(current_version) != str(resource_version):
            log.info(
                "Pool %s moved from revision %s to %s before write",
                name,
                resource_version,
                current_version,
            )
            raise Conflict(name)

        labels = normalize_labels(metadata.get("labels"))
        labels[STATUS_LABEL] = status
        metadata["labels"] = labels

        # replace carries metadata.resourceVersion, so a concurrent writer makes the API answer 409
        try:
            updated = self._api.replace_cluster_custom_object(
                self._group,
                self._version,
                self._plural,
                name,
                body,
                _request_timeout=self._timeout,
            )
        except ApiException as e:
            if e.status == 409:
                raise Conflict(name) from e
            if e.status == 404:
                raise PoolNotFound(name) from e
            raise RegistryUnavailable(
                f"could not update pool {name} ({e.status} {e.reason})"
            ) from e
        except Exception as e:
            raise RegistryUnavailable(f"could not update pool {name}: {e}") from e

        new_version = (
            updated.get("metadata", {}).get("resourceVersion")
            if isinstance(updated, dict)
            else None
        )
        return str(new_version) if new_version is not None else None
