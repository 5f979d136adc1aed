# tests/test_sources.py
"""Tests for imgproxy/core/sources.py - source lookup and addressing schemes."""
from __future__ import annotations

import pytest

from imgproxy.core.errors import (
    DirectoryTraversalError,
    MisconfigurationError,
    PathNotAllowedError,
    UnknownSourceError,
)
from imgproxy.core.path_validator import directories, with_extensions
from imgproxy.core.sources import (
    AddressingScheme,
    ResolvedRequest,
    SourceConfig,
    SourceResolver,
    normalize_source_config,
)


class RecordingValidator:
    """Captures every path it is asked about."""

    def __init__(self, result: bool = True):
        self.result = result
        self.seen: list[str] = []

    def validate(self, path: str) -> bool:
        self.seen.append(path)
        return self.result


class TestNormalizeSourceConfig:
    def test_string_is_backend_shorthand(self):
        assert normalize_source_config("public") == SourceConfig(backend_id="public")

    def test_mapping(self):
        config = normalize_source_config({"backend": "s3", "root": "/uploads/", "validator": {"extensions": ["jpg"]}})
        assert config.backend_id == "s3"
        assert config.root == "uploads"
        assert config.validator.validate("uploads/a.jpg")

    def test_legacy_disk_key(self):
        assert normalize_source_config({"disk": "local"}).backend_id == "local"

    def test_mapping_defaults_to_public_backend(self):
        assert normalize_source_config({"root": "x"}).backend_id == "public"

    def test_empty_backend_rejected(self):
        with pytest.raises(MisconfigurationError):
            normalize_source_config("  ")

    def test_root_with_traversal_rejected(self):
        with pytest.raises(MisconfigurationError):
            normalize_source_config({"backend": "public", "root": "../etc"})

    def test_unsupported_shape(self):
        with pytest.raises(MisconfigurationError):
            normalize_source_config(42)

    def test_fallback_validator_applied_when_missing(self):
        fallback = with_extensions("png")
        assert normalize_source_config("public", fallback).validator is fallback

    def test_own_validator_wins_over_fallback(self):
        fallback = with_extensions("png")
        config = normalize_source_config({"backend": "public", "validator": {"extensions": ["jpg"]}}, fallback)
        assert config.validator is not fallback


class TestResolve:
    def _resolver(self, **sources):
        return SourceResolver(sources)

    def test_no_root(self):
        resolver = self._resolver(images=SourceConfig("public"))
        assert resolver.resolve("images", "a/b.jpg") == ResolvedRequest("public", "a/b.jpg")

    def test_root_prepended(self):
        resolver = self._resolver(media=SourceConfig("s3", root="uploads"))
        assert resolver.resolve("media", "a.jpg").full_path == "uploads/a.jpg"

    def test_unknown_source(self):
        with pytest.raises(UnknownSourceError):
            self._resolver(images=SourceConfig("public")).resolve("nope", "a.jpg")

    def test_traversal_rejected_before_validator(self):
        validator = RecordingValidator()
        resolver = self._resolver(images=SourceConfig("public", validator=validator))
        with pytest.raises(DirectoryTraversalError):
            resolver.resolve("images", "../secret.jpg")
        assert validator.seen == []

    def test_traversal_rejected_without_validator(self):
        with pytest.raises(DirectoryTraversalError):
            self._resolver(images=SourceConfig("public")).resolve("images", "a/../../b.jpg")

    def test_validator_receives_full_path(self):
        validator = RecordingValidator()
        resolver = self._resolver(media=SourceConfig("public", root="uploads", validator=validator))
        resolver.resolve("media", "2024/a.jpg")
        assert validator.seen == ["uploads/2024/a.jpg"]

    def test_validator_rejection(self):
        resolver = self._resolver(images=SourceConfig("public", validator=directories("allowed")))
        with pytest.raises(PathNotAllowedError):
            resolver.resolve("images", "blocked/a.jpg")

    def test_extension_from_full_path(self):
        resolver = self._resolver(images=SourceConfig("public"))
        assert resolver.resolve("images", "a/B.PNG").extension == "png"


class TestSourceScheme:
    def test_first_segment_is_source(self):
        resolver = SourceResolver({"media": SourceConfig("public")})
        assert resolver.split("media/photos/a.jpg") == ("media", "photos/a.jpg")
        assert resolver.resolve_path("media/photos/a.jpg").full_path == "photos/a.jpg"

    def test_missing_source_segment(self):
        resolver = SourceResolver({"media": SourceConfig("public")})
        with pytest.raises(UnknownSourceError):
            resolver.split("a.jpg")


class TestPrefixScheme:
    def _resolver(self):
        return SourceResolver(
            {
                "": SourceConfig("public"),
                "img": SourceConfig("public", root="images"),
                "img/products": SourceConfig("s3", root="catalog"),
            },
            scheme=AddressingScheme.PREFIX,
        )

    def test_longest_prefix_wins(self):
        resolved = self._resolver().resolve_path("img/products/shoe.jpg")
        assert resolved == ResolvedRequest("s3", "catalog/shoe.jpg")

    def test_shorter_prefix(self):
        resolved = self._resolver().resolve_path("img/banner.jpg")
        assert resolved == ResolvedRequest("public", "images/banner.jpg")

    def test_prefix_must_end_on_segment_boundary(self):
        assert self._resolver().split("imgx/a.jpg") == ("", "imgx/a.jpg")

    def test_default_source(self):
        resolved = self._resolver().resolve_path("other/a.jpg")
        assert resolved == ResolvedRequest("public", "other/a.jpg")

    def test_no_default_configured(self):
        resolver = SourceResolver({"img": SourceConfig("public")}, scheme="prefix")
        with pytest.raises(UnknownSourceError):
            resolver.resolve_path("other/a.jpg")

    def test_traversal_in_prefixed_path(self):
        with pytest.raises(DirectoryTraversalError):
            self._resolver().resolve_path("img/../etc/passwd.jpg")
