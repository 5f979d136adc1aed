# imgproxy/core/sources.py
"""
Source resolution: logical source + relative path → (backend, full path).

Two addressing schemes are supported, one per deployment:

- ``source``: the URL names the source explicitly, ``/{options}/{source}/{path}``
- ``prefix``: the path itself starts with a configured source key,
  ``/{options}/{path}``; the longest matching key wins and unmatched
  paths fall back to the default source.

Validators always receive the full path (root included), never the
relative path from the URL.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from imgproxy.core.errors import (
    DirectoryTraversalError,
    MisconfigurationError,
    PathNotAllowedError,
    UnknownSourceError,
)
from imgproxy.core.path_validator import (
    PathValidatorCapability,
    build_validator,
    extension_of,
    has_traversal,
)

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "public"


class AddressingScheme(str, Enum):
    SOURCE = "source"
    PREFIX = "prefix"


@dataclass(frozen=True)
class SourceConfig:
    """Canonical, load-time-normalized source entry."""
    backend_id: str
    root: str | None = None
    validator: PathValidatorCapability | None = None

    def full_path(self, relative_path: str) -> str:
        if self.root:
            return f"{self.root}/{relative_path}"
        return relative_path


@dataclass(frozen=True)
class ResolvedRequest:
    backend_id: str
    full_path: str

    @property
    def extension(self) -> str:
        return extension_of(self.full_path)


def normalize_source_config(
    raw: Any,
    fallback_validator: PathValidatorCapability | None = None,
) -> SourceConfig:
    """
    Normalize a configured source entry.

    ``"disk"`` is shorthand for ``{"backend": "disk"}``.  Structured entries
    may use ``backend`` (or the legacy ``disk``), ``root`` and ``validator``.
    Sources without their own validator get ``fallback_validator``.
    """
    if isinstance(raw, SourceConfig):
        config = raw
    elif isinstance(raw, str):
        config = SourceConfig(backend_id=raw)
    elif isinstance(raw, Mapping):
        backend = raw.get("backend") or raw.get("disk") or DEFAULT_BACKEND
        config = SourceConfig(
            backend_id=str(backend),
            root=_normalize_root(raw.get("root")),
            validator=build_validator(raw.get("validator")),
        )
    else:
        raise MisconfigurationError(f"Unsupported source config: {type(raw).__name__}")

    if not config.backend_id.strip():
        raise MisconfigurationError("Source backend must not be empty")

    if config.validator is None and fallback_validator is not None:
        config = SourceConfig(config.backend_id, config.root, fallback_validator)

    return config


def _normalize_root(root: Any) -> str | None:
    if not root:
        return None
    root = str(root).strip("/")
    if has_traversal(root):
        raise MisconfigurationError(f"Source root must not contain '..': {root!r}")
    return root or None


class SourceResolver:
    """Maps (source, relative path) to a validated ResolvedRequest."""

    def __init__(
        self,
        sources: Mapping[str, SourceConfig],
        scheme: AddressingScheme = AddressingScheme.SOURCE,
        default_source: str = "",
    ):
        self._sources = dict(sources)
        self.scheme = AddressingScheme(scheme)
        self.default_source = default_source
        # Declaration order, default entry excluded
        self._prefixes = [key for key in self._sources if key]

    @property
    def source_keys(self) -> list[str]:
        return list(self._sources)

    def locate(self, source_key: str, relative_path: str) -> tuple[SourceConfig, ResolvedRequest]:
        """Look up the source and build the full path (traversal is always rejected)."""
        config = self._sources.get(source_key)
        if config is None:
            logger.warning(f"Unknown source requested: {source_key!r}")
            raise UnknownSourceError()

        if has_traversal(relative_path):
            logger.warning(f"Directory traversal blocked: source={source_key!r}")
            raise DirectoryTraversalError()

        resolved = ResolvedRequest(backend_id=config.backend_id, full_path=config.full_path(relative_path))
        return config, resolved

    def authorize(self, config: SourceConfig, resolved: ResolvedRequest) -> None:
        """Run the source validator against the full path."""
        if config.validator is not None and not config.validator.validate(resolved.full_path):
            logger.warning(f"Path rejected by validator: path={resolved.full_path}")
            raise PathNotAllowedError()

    def resolve(self, source_key: str, relative_path: str) -> ResolvedRequest:
        config, resolved = self.locate(source_key, relative_path)
        self.authorize(config, resolved)
        return resolved

    def split_prefixed(self, path: str) -> tuple[str, str]:
        """Find the longest configured source key prefixing ``path``."""
        best: str | None = None
        for prefix in self._prefixes:
            if path.startswith(prefix + "/") and (best is None or len(prefix) > len(best)):
                best = prefix

        if best is None:
            return self.default_source, path
        return best, path[len(best) + 1:]

    def split_explicit(self, path: str) -> tuple[str, str]:
        source, sep, rest = path.partition("/")
        if not sep:
            raise UnknownSourceError()
        return source, rest

    def split(self, path: str) -> tuple[str, str]:
        """Split the URL path following the options segment into (source, relative path)."""
        if self.scheme is AddressingScheme.PREFIX:
            return self.split_prefixed(path)
        return self.split_explicit(path)

    def resolve_path(self, path: str) -> ResolvedRequest:
        return self.resolve(*self.split(path))
