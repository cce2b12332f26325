import importlib
import threading
from typing import Any

import pytest

from ippool_webhook.exceptions import Conflict, PoolNotFound, RegistryUnavailable
from ippool_webhook.models import Pool, normalize_labels
from ippool_webhook.store.interface import PoolRegistry


class InMemoryRegistry(PoolRegistry):
	"""Pool registry with per-pool revisions, enough to exercise compare-and-swap."""

	def __init__(self):
		self._lock = threading.Lock()
		self._pools: dict[str, dict[str, Any]] = {}
		self.list_calls = 0
		self.writes: list[tuple[str, str]] = []

	def add(self, name: str, cidr: str = "10.0.0.0/26", **labels: str) -> None:
		self._pools[name] = {"cidr": cidr, "labels": dict(labels), "rv": 1}

	def raw_labels(self, name: str) -> dict[str, str]:
		return dict(self._pools[name]["labels"])

	def status(self, name: str) -> str | None:
		return normalize_labels(self._pools[name]["labels"]).get("status")

	def _as_pool(self, name: str) -> Pool:
		entry = self._pools[name]
		return Pool(
			name=name,
			cidr=entry["cidr"],
			labels=normalize_labels(entry["labels"]),
			resource_version=str(entry["rv"]),
		)

	def list_pools(self, selector: str) -> list[Pool]:
		key, _, value = selector.partition("=")
		with self._lock:
			self.list_calls += 1
			return [
				self._as_pool(name)
				for name, entry in self._pools.items()
				if normalize_labels(entry["labels"]).get(key.lower()) == value
			]

	def get_pool(self, name: str) -> Pool:
		with self._lock:
			if name not in self._pools:
				raise PoolNotFound(name)
			return self._as_pool(name)

	def set_pool_status(self, name: str, status: str, resource_version: str | None = None) -> str:
		with self._lock:
			if name not in self._pools:
				raise PoolNotFound(name)
			entry = self._pools[name]
			if resource_version is not None and str(entry["rv"]) != str(resource_version):
				raise Conflict(name)
			labels = normalize_labels(entry["labels"])
			labels["status"] = status
			entry["labels"] = labels
			entry["rv"] += 1
			self.writes.append((name, status))
			return str(entry["rv"])


class UnavailableRegistry(PoolRegistry):
	def list_pools(self, selector):
		raise RegistryUnavailable("connection refused")

	def get_pool(self, name):
		raise RegistryUnavailable("connection refused")

	def set_pool_status(self, name, status, resource_version=None):
		raise RegistryUnavailable("connection refused")


class DictLedger:
	def __init__(self):
		self.entries: dict[str, tuple[str, str]] = {}

	def recall(self, namespace):
		return self.entries.get(namespace)

	def record(self, namespace, pool_name, claimed_revision, ttl_seconds=None):
		self.entries[namespace] = (pool_name, claimed_revision)

	def forget(self, namespace):
		self.entries.pop(namespace, None)


@pytest.fixture
def registry() -> InMemoryRegistry:
	return InMemoryRegistry()


def import_app(monkeypatch: pytest.MonkeyPatch) -> Any:
	"""
	Import the app module with cluster config disabled. Returns the loaded module.
	"""
	monkeypatch.setenv("APP_ENV", "test")
	monkeypatch.setenv("LOG_LEVEL", "WARNING")
	monkeypatch.delenv("REDIS_URL", raising=False)
	return importlib.import_module("ippool_webhook.app")
