"""
Firebase Realtime Database access for TaskBazar.

Every path handed to Store is relative to the application namespace
(artifacts/{APP_ID}). Handlers receive the store through the get_store
dependency so tests can swap in an in-memory implementation with the same
get/update/set/push/delete contract.
"""

import logging
import threading
from typing import Any, Dict, Optional

import firebase_admin
from fastapi import HTTPException
from firebase_admin import credentials, db as rtdb
from firebase_admin.exceptions import FirebaseError

from config import Settings, settings

logger = logging.getLogger(__name__)

# Resolved by the database server to its own clock on write.
SERVER_TIMESTAMP = {".sv": "timestamp"}


class StoreError(RuntimeError):
    """Any failure talking to the remote store."""


class Store:
    def __init__(self, app: firebase_admin.App, namespace: str):
        self.app = app
        self.namespace = namespace.strip("/")

    def _ref(self, path: str) -> rtdb.Reference:
        return rtdb.reference(f"{self.namespace}/{path.strip('/')}", app=self.app)

    def _call(self, op: str, path: str, fn, *args):
        try:
            return fn(*args)
        except (FirebaseError, ValueError) as e:
            logger.error("Store %s failed at %s: %s", op, path, e)
            raise StoreError(f"{op} {path}") from e

    def get(self, path: str, shallow: bool = False) -> Any:
        """Read a node; shallow returns only its immediate keys."""
        ref = self._ref(path)
        if shallow:
            return self._call("get", path, lambda: ref.get(shallow=True))
        return self._call("get", path, ref.get)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._call("update", path, self._ref(path).update, fields)

    def set(self, path: str, value: Any) -> None:
        self._call("set", path, self._ref(path).set, value)

    def push(self, path: str, value: Any) -> str:
        ref = self._call("push", path, self._ref(path).push, value)
        return ref.key

    def delete(self, path: str) -> None:
        self._call("delete", path, self._ref(path).delete)


def connect(cfg: Settings) -> Optional[Store]:
    """Initialise the firebase app from settings; None when no credential is set."""
    if not cfg.store_configured:
        logger.warning("FIREBASE_SERVICE_ACCOUNT not set, store unavailable")
        return None
    try:
        app = firebase_admin.get_app()
    except ValueError:
        try:
            app = firebase_admin.initialize_app(
                credentials.Certificate(cfg.service_account),
                {"databaseURL": cfg.database_url},
            )
        except ValueError:
            # Another thread initialised the default app first.
            app = firebase_admin.get_app()
    logger.info("Connected to %s under artifacts/%s", cfg.database_url, cfg.app_id)
    return Store(app, f"artifacts/{cfg.app_id}")


_store: Optional[Store] = None
_store_lock = threading.Lock()


def init_store() -> Optional[Store]:
    """Connect once per process; later calls return the same store."""
    global _store
    with _store_lock:
        if _store is None:
            _store = connect(settings)
    return _store


def get_store() -> Store:
    store = _store or init_store()
    if store is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return store
