"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: MIT-0
"""
import logging
import os
import threading
import time

from flask import Flask
from kubernetes import client, config

from .admission import AdmissionDecisionBuilder
from .allocator import PoolAllocator
from .config import settings
from .helpers import audit_claims
from .routes import create_routes
from .store.calico_store import CalicoPoolRegistry
from .store.redis_store import RedisClaimLedger

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("ippool-webhook")


def _load_cluster_config() -> None:
    try:
        config.load_incluster_config()
        log.info("Loaded in-cluster config")
    except config.ConfigException:
        config.load_kube_config()
        log.info("Loaded kubeconfig")


def create_app(registry, app_settings=settings, ledger=None) -> Flask:
    """Build the Flask app around a pool registry; registry=None answers every review with 500."""
    builder = None
    if registry is not None:
        allocator = PoolAllocator(
            registry,
            max_attempts=app_settings.claim_max_attempts,
            ledger=ledger,
            ledger_ttl_seconds=app_settings.claim_ledger_ttl_seconds,
        )
        builder = AdmissionDecisionBuilder(allocator, app_settings)

    flask_app = Flask(__name__)
    flask_app.register_blueprint(create_routes(builder))
    return flask_app


def _is_test_env() -> bool:
    return os.getenv("APP_ENV", getattr(settings, "app_env", "production")) == "test"


# Initialize Kubernetes clients; avoid constructing real clients in tests
if _is_test_env():
    core = object()
    registry = None
else:
    _load_cluster_config()
    core = client.CoreV1Api()
    registry = CalicoPoolRegistry(
        client.CustomObjectsApi(),
        group=settings.pool_group,
        version=settings.pool_version,
        plural=settings.pool_plural,
        timeout_seconds=settings.registry_timeout_seconds,
    )

ledger = None
_audit_thread = None
if getattr(settings, "redis_url", ""):
    try:
        ledger = RedisClaimLedger(
            settings.redis_url,
            getattr(settings, "claim_ledger_ttl_seconds", 86400),
            timeout_seconds=settings.registry_timeout_seconds,
        )
    except Exception as e:
        log.warning("Failed to initialize Redis claim ledger: %s; retried CREATEs will claim anew", e)
else:
    log.info("REDIS_URL not set; claim ledger disabled")


def _start_audit_worker():
    if _is_test_env() or registry is None:
        return

    if not getattr(settings, "audit_enabled", True):
        log.info("Audit worker disabled by config")
        return

    global _audit_thread
    if _audit_thread is not None:
        return

    interval = max(60, int(getattr(settings, "audit_interval_seconds", 1800)))

    def _loop():
        while True:
            try:
                audit_claims(core, settings, registry)
            except Exception:
                log.error("Audit worker iteration failed", exc_info=True)
            finally:
                time.sleep(interval)

    _audit_thread = threading.Thread(target=_loop, name="audit-worker", daemon=True)
    _audit_thread.start()
    log.info("Audit worker started (interval=%ss)", interval)


app = create_app(registry, settings, ledger)

# Start audit worker eagerly in non-test envs (compatible with gunicorn)
_start_audit_worker()

if __name__ == "__main__":
    log.info("Starting webhook server on port %s...", settings.port)
    _start_audit_worker()
    app.run(
        host="0.0.0.0",
        port=settings.port,
        ssl_context=(settings.tls_cert_file, settings.tls_key_file),
        threaded=True,
    )
