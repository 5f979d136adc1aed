# imgproxy/core/ports.py
from __future__ import annotations
from typing import Any, Protocol

from imgproxy.core.transform import TransformSpec


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================

class BlobStore(Protocol):
    def exists(self, backend_id: str, full_path: str) -> bool: ...

    def read(self, backend_id: str, full_path: str) -> bytes:
        """Raises NotFoundError when nothing is stored at ``full_path``."""
        ...


class ImageCodec(Protocol):
    def decode(self, data: bytes) -> Any: ...
    def resize(self, image: Any, spec: TransformSpec) -> Any: ...

    def encode(self, image: Any, fmt: str, quality: int) -> tuple[bytes, str]:
        """Returns (encoded_bytes, mime_type)."""
        ...


class RateCounterStore(Protocol):
    def increment(self, identity: str, window_seconds: int) -> int:
        """Record one hit for ``identity`` and return the count inside the window."""
        ...
