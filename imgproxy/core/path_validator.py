# imgproxy/core/path_validator.py
"""
Composable path allow-lists.

A ``PathValidator`` holds three independent rule categories:

- directories: path must live under one of the prefixes
- patterns: path must match one of the glob patterns
- extensions: path must have one of the extensions (case-insensitive)

Categories combine with AND, entries inside a category with OR.  An
unconfigured category passes vacuously.  Directory traversal (``..``) is
always rejected, whatever the rules say.

Usage::

    validator = directories("images", "uploads").with_extensions("jpg", "png")
    validator.validate("images/a.jpg")  # True

Validators are immutable: every chained call returns a new instance, so a
compiled validator can be shared across concurrent requests.
"""
from __future__ import annotations

import importlib
import posixpath
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Protocol, runtime_checkable

from imgproxy.core.errors import MisconfigurationError
from imgproxy.core.glob import glob_matches


@runtime_checkable
class PathValidatorCapability(Protocol):
    def validate(self, path: str) -> bool: ...


def has_traversal(path: str) -> bool:
    return ".." in path


@dataclass(frozen=True)
class PathValidator:
    """Rule-set validator (directories AND patterns AND extensions)."""

    directory_rules: tuple[str, ...] = ()
    pattern_rules: tuple[str, ...] = ()
    extension_rules: frozenset[str] = frozenset()

    def directories(self, *dirs: str) -> "PathValidator":
        added = tuple(d.rstrip("/") + "/" for d in _flatten(dirs))
        return PathValidator(self.directory_rules + added, self.pattern_rules, self.extension_rules)

    def matching(self, *patterns: str) -> "PathValidator":
        return PathValidator(
            self.directory_rules,
            self.pattern_rules + tuple(_flatten(patterns)),
            self.extension_rules,
        )

    def with_extensions(self, *extensions: str) -> "PathValidator":
        added = frozenset(e.lower().lstrip(".") for e in _flatten(extensions))
        return PathValidator(self.directory_rules, self.pattern_rules, self.extension_rules | added)

    @property
    def is_open(self) -> bool:
        """True when no category is configured (only traversal is checked)."""
        return not (self.directory_rules or self.pattern_rules or self.extension_rules)

    def validate(self, path: str) -> bool:
        if has_traversal(path):
            return False

        if self.directory_rules and not any(path.startswith(d) for d in self.directory_rules):
            return False

        if self.pattern_rules and not any(glob_matches(path, p) for p in self.pattern_rules):
            return False

        if self.extension_rules and extension_of(path) not in self.extension_rules:
            return False

        return True


@dataclass(frozen=True)
class CallableValidator:
    """Adapter exposing an externally supplied predicate as a validator."""

    predicate: Callable[[str], Any]

    def validate(self, path: str) -> bool:
        return bool(self.predicate(path))


def directories(*dirs: str) -> PathValidator:
    return PathValidator().directories(*dirs)


def matching(*patterns: str) -> PathValidator:
    return PathValidator().matching(*patterns)


def with_extensions(*extensions: str) -> PathValidator:
    return PathValidator().with_extensions(*extensions)


def extension_of(path: str) -> str:
    return posixpath.splitext(path)[1].lstrip(".").lower()


def _flatten(items: Iterable[Any]) -> list[str]:
    # Accept both directories("a", "b") and directories(["a", "b"])
    flat: list[str] = []
    for item in items:
        if isinstance(item, (list, tuple, set, frozenset)):
            flat.extend(str(i) for i in item)
        else:
            flat.append(str(item))
    return flat


def _import_object(dotted: str) -> Any:
    module_path, sep, attr = dotted.partition(":")
    if not sep:
        module_path, _, attr = dotted.rpartition(".")
    if not module_path or not attr:
        raise MisconfigurationError(f"Invalid validator reference: {dotted!r}")
    try:
        module = importlib.import_module(module_path)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise MisconfigurationError(f"Cannot import validator {dotted!r}: {exc}") from exc


def build_validator(raw: Any) -> "PathValidator | CallableValidator | None":
    """
    Turn a configured validator into a capability object.

    Accepted shapes (resolved once, at configuration-load time):
        None                         → no validator
        PathValidator / CallableValidator → used as-is
        object with ``validate()``   → its method wrapped in CallableValidator
        class                        → instantiated, then wrapped like an object
        callable                     → wrapped in CallableValidator
        mapping of rule lists        → compiled PathValidator
        "module:attribute" string    → imported, then resolved as above
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        return build_validator(_import_object(raw))

    if isinstance(raw, Mapping):
        return _rules_from_mapping(raw)

    if isinstance(raw, type):
        instance = raw()
        if not isinstance(instance, PathValidatorCapability):
            raise MisconfigurationError(f"Validator class {raw.__name__} has no validate() method")
        return CallableValidator(instance.validate)

    if isinstance(raw, (PathValidator, CallableValidator)):
        return raw

    if isinstance(raw, PathValidatorCapability):
        return CallableValidator(raw.validate)

    if callable(raw):
        return CallableValidator(raw)

    raise MisconfigurationError(f"Unsupported validator config: {type(raw).__name__}")


def _rules_from_mapping(rules: Mapping[str, Any]) -> PathValidator:
    unknown = set(rules) - {"directories", "patterns", "extensions"}
    if unknown:
        raise MisconfigurationError(f"Unknown validator rules: {sorted(unknown)}")

    validator = PathValidator()
    if rules.get("directories"):
        validator = validator.directories(rules["directories"])
    if rules.get("patterns"):
        validator = validator.matching(rules["patterns"])
    if rules.get("extensions"):
        validator = validator.with_extensions(rules["extensions"])
    return validator
