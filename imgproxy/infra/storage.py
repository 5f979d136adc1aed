# imgproxy/infra/storage.py
"""
Blob storage backends addressed by backend id.

Backends are configured in ``STORAGE_BACKENDS``:

    {"public": {"driver": "local", "root": "public"},
     "s3": {"driver": "s3", "bucket": "images", "prefix": "originals"}}

``BackendRegistry`` implements the pipeline's blob-store port by
dispatching ``exists``/``read`` to the backend named in the resolved request.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Protocol

from imgproxy.core.errors import MisconfigurationError, NotFoundError
from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)


class Backend(Protocol):
    def exists(self, path: str) -> bool: ...
    def read(self, path: str) -> bytes: ...


class LocalBlobStore:
    """Filesystem backend rooted at a directory."""

    def __init__(self, root: str | Path):
        self._root = Path(root).resolve()

    def _locate(self, path: str) -> Path | None:
        candidate = (self._root / path.lstrip("/")).resolve()
        # SECURITY: never serve anything outside the backend root (symlinks included)
        if not candidate.is_relative_to(self._root):
            logger.warning(f"Blocked path escaping backend root: {path[:100]}")
            return None
        return candidate

    def exists(self, path: str) -> bool:
        candidate = self._locate(path)
        return candidate is not None and candidate.is_file()

    def read(self, path: str) -> bytes:
        candidate = self._locate(path)
        if candidate is None or not candidate.is_file():
            raise NotFoundError()
        return candidate.read_bytes()


class InMemoryBlobStore:
    """Dict-backed backend (fixtures, local development)."""

    def __init__(self, objects: Mapping[str, bytes] | None = None):
        self._objects = dict(objects or {})

    def put(self, path: str, data: bytes) -> None:
        self._objects[path] = data

    def exists(self, path: str) -> bool:
        return path in self._objects

    def read(self, path: str) -> bytes:
        try:
            return self._objects[path]
        except KeyError:
            raise NotFoundError() from None


class BackendRegistry:
    """BlobStore port over named backends."""

    def __init__(self, backends: Mapping[str, Backend]):
        self._backends = dict(backends)

    def __contains__(self, backend_id: str) -> bool:
        return backend_id in self._backends

    def get(self, backend_id: str) -> Backend:
        backend = self._backends.get(backend_id)
        if backend is None:
            logger.error(f"Storage backend not configured: {backend_id}")
            raise MisconfigurationError()
        return backend

    def exists(self, backend_id: str, full_path: str) -> bool:
        return self.get(backend_id).exists(full_path)

    def read(self, backend_id: str, full_path: str) -> bytes:
        backend = self.get(backend_id)
        if not backend.exists(full_path):
            raise NotFoundError()
        return backend.read(full_path)


def build_backend(name: str, config: Mapping[str, Any], settings) -> Backend:
    driver = config.get("driver", "local")

    if driver == "local":
        return LocalBlobStore(config.get("root") or name)

    if driver == "s3":
        from imgproxy.infra.s3_storage import S3BlobStore
        return S3BlobStore.from_settings(
            settings,
            bucket=config.get("bucket"),
            prefix=config.get("prefix"),
        )

    raise MisconfigurationError(f"Unknown storage driver for backend '{name}': {driver}")


def build_registry(settings) -> BackendRegistry:
    """Create every configured backend once, at startup."""
    backends = {
        name: build_backend(name, config, settings)
        for name, config in settings.storage_backends.items()
    }
    logger.info(f"Storage backends initialized: {sorted(backends)}")
    return BackendRegistry(backends)
