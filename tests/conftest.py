import copy
import itertools

import pytest
from fastapi.testclient import TestClient

import main
from auth import InvalidToken, get_identity
from database import SERVER_TIMESTAMP, StoreError, get_store

FIXED_NOW = 1_700_000_000_000


class FakeStore:
    """In-memory stand-in for the Realtime Database store."""

    def __init__(self, data=None):
        self.data = data or {}
        self.namespace = "artifacts/test"
        self.fail_on = set()
        self.reads = []
        self.writes = []
        self._ids = itertools.count()

    def _parts(self, path):
        return [p for p in path.split("/") if p]

    def _resolve(self, value):
        if value == SERVER_TIMESTAMP:
            return FIXED_NOW
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items() if v is not None}
        return value

    def _node(self, path, create=False):
        node = self.data
        for part in self._parts(path):
            if not isinstance(node, dict) or (part not in node and not create):
                return None
            node = node.setdefault(part, {})
        return node

    def _check(self, op, path):
        if op in self.fail_on:
            raise StoreError(f"{op} {path}")

    def get(self, path, shallow=False):
        self._check("get", path)
        self.reads.append((path, shallow))
        *parents, leaf = self._parts(path)
        parent = self._node("/".join(parents))
        if not isinstance(parent, dict) or leaf not in parent:
            return None
        value = copy.deepcopy(parent[leaf])
        if shallow and isinstance(value, dict):
            return {k: True if isinstance(v, dict) else v for k, v in value.items()}
        return value

    def update(self, path, fields):
        self._check("update", path)
        self.writes.append(("update", path))
        self._node(path, create=True).update(self._resolve(fields))

    def set(self, path, value):
        self._check("set", path)
        self.writes.append(("set", path))
        *parents, leaf = self._parts(path)
        self._node("/".join(parents), create=True)[leaf] = self._resolve(value)

    def push(self, path, value):
        self._check("push", path)
        self.writes.append(("push", path))
        key = f"-N{next(self._ids):06d}"
        self._node(path, create=True)[key] = self._resolve(value)
        return key

    def delete(self, path):
        self._check("delete", path)
        self.writes.append(("delete", path))
        *parents, leaf = self._parts(path)
        parent = self._node("/".join(parents))
        if isinstance(parent, dict):
            parent.pop(leaf, None)

    # helpers for assertions
    def stats(self, uid):
        return self.get(f"users/{uid}/stats") or {}

    def transactions(self, uid):
        return list((self.get(f"users/{uid}/transactions") or {}).values())

    def notifications(self, uid):
        return list((self.get(f"users/{uid}/notifications") or {}).values())


class FakeIdentity:
    """Accepts tokens of the form "token-<uid>"."""

    def verify(self, token):
        if not token.startswith("token-"):
            raise InvalidToken("bad token")
        return token[len("token-"):]


def auth(uid):
    return {"Authorization": f"Bearer token-{uid}"}


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def client(store):
    main.app.dependency_overrides[get_store] = lambda: store
    main.app.dependency_overrides[get_identity] = lambda: FakeIdentity()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def fixed_spin(monkeypatch):
    """Force the wheel to land on a given index."""
    class _Wheel:
        def __init__(self, index):
            self.index = index

        def randrange(self, n):
            return self.index

    def _set(index):
        monkeypatch.setattr(main, "_rng", _Wheel(index))
    return _set
