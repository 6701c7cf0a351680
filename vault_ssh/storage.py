"""Key/value storage behind the issuer.

Keys are slash separated strings (``roles/web``, ``keys/admin``,
``otp/<salted>``) and values are JSON-compatible dicts. ``get`` returns
``None`` for absent keys; transport or backend failures raise
``StorageError``.
"""
import copy
import logging
from threading import Lock
from typing import Any, Callable, Dict, Optional

import hvac

from .errors import StorageError
from .settings import settings
from .vault import kv_read, kv_write, new_vault_client

logger = logging.getLogger("vault_ssh.storage")


class Storage:
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def create_if_absent(self, key: str, value: Dict[str, Any]) -> bool:
        """Atomically write ``value`` only if ``key`` does not exist.

        Returns ``True`` when the write happened, ``False`` when the key was
        already taken.
        """
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class MemoryStorage(Storage):
    """Process-local storage. Atomicity holds within a single process only."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._lock = Lock()
        self._data: Dict[str, Dict[str, Any]] = copy.deepcopy(initial or {})

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def create_if_absent(self, key: str, value: Dict[str, Any]) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = copy.deepcopy(value)
            return True

    def keys(self, prefix: str = "") -> list:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class VaultStorage(Storage):
    """Vault KV v2 storage rooted at ``<mount>/<prefix>``.

    ``create_if_absent`` uses check-and-set with ``cas=0``, which Vault only
    accepts when no version of the secret exists yet.
    """

    def __init__(self, client_factory: Callable[[], hvac.Client] = new_vault_client, prefix: Optional[str] = None):
        self._client_factory = client_factory
        self._client: Optional[hvac.Client] = None
        self._client_lock = Lock()
        self.prefix = (settings.STORAGE_PREFIX if prefix is None else prefix).strip("/")

    def _path(self, key: str) -> str:
        key = key.strip("/")
        return f"{self.prefix}/{key}" if self.prefix else key

    def client(self) -> hvac.Client:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = self._client_factory()
                except (hvac.exceptions.VaultError, OSError, RuntimeError) as exc:
                    raise StorageError(f"vault client unavailable: {exc}") from exc
            return self._client

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            res = kv_read(self.client(), self._path(key))
        except hvac.exceptions.InvalidPath:
            return None
        except (hvac.exceptions.VaultError, OSError) as exc:
            raise StorageError(f"read {key!r} failed: {exc}") from exc
        return ((res or {}).get("data") or {}).get("data")

    def put(self, key: str, value: Dict[str, Any]) -> None:
        try:
            kv_write(self.client(), self._path(key), value)
        except (hvac.exceptions.VaultError, OSError) as exc:
            raise StorageError(f"write {key!r} failed: {exc}") from exc

    def create_if_absent(self, key: str, value: Dict[str, Any]) -> bool:
        try:
            kv_write(self.client(), self._path(key), value, cas=0)
        except hvac.exceptions.InvalidRequest as exc:
            if "check-and-set" in str(exc):
                return False
            raise StorageError(f"write {key!r} failed: {exc}") from exc
        except (hvac.exceptions.VaultError, OSError) as exc:
            raise StorageError(f"write {key!r} failed: {exc}") from exc
        return True

    def ping(self) -> bool:
        return bool(self.client().is_authenticated())


def storage_from_settings() -> Storage:
    backend = (settings.STORAGE_BACKEND or "vault").lower()
    if backend == "memory":
        logger.warning("using in-memory storage; state is lost on restart")
        return MemoryStorage()
    if backend == "vault":
        return VaultStorage()
    raise ValueError(f"unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'")


_storage: Optional[Storage] = None
_storage_lock = Lock()


def get_storage() -> Storage:
    global _storage
    with _storage_lock:
        if _storage is None:
            _storage = storage_from_settings()
        return _storage
