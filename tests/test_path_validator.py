# tests/test_path_validator.py
"""Tests for imgproxy/core/path_validator.py - composable allow-lists."""
from __future__ import annotations

import dataclasses

import pytest

from imgproxy.core.errors import MisconfigurationError
from imgproxy.core.path_validator import (
    CallableValidator,
    PathValidator,
    build_validator,
    directories,
    extension_of,
    matching,
    with_extensions,
)


class OnlyPng:
    def validate(self, path: str) -> bool:
        return path.endswith(".png")


class NoValidateMethod:
    pass


class TestRuleCategories:
    def test_open_validator_accepts_anything_but_traversal(self):
        v = PathValidator()
        assert v.is_open
        assert v.validate("anything/at/all.bin")
        assert not v.validate("a/../b.jpg")

    def test_directories(self):
        v = directories("images", "uploads/")
        assert v.validate("images/a.jpg")
        assert v.validate("uploads/2024/a.jpg")
        assert not v.validate("imagesX/a.jpg")
        assert not v.validate("private/a.jpg")

    def test_patterns(self):
        v = matching("images/*.jpg", "**/*.png")
        assert v.validate("images/a.jpg")
        assert v.validate("deep/er/a.png")
        assert not v.validate("images/sub/a.jpg")

    def test_extensions_case_insensitive(self):
        v = with_extensions("JPG", ".png")
        assert v.validate("a/b.jpg")
        assert v.validate("a/b.JPG")
        assert v.validate("a/b.png")
        assert not v.validate("a/b.gif")
        assert not v.validate("a/noext")

    def test_categories_combine_with_and(self):
        v = directories("images").with_extensions("jpg")
        assert v.validate("images/a.jpg")
        assert not v.validate("images/a.png")
        assert not v.validate("other/a.jpg")

    @pytest.mark.parametrize("validator", [
        directories("images"),
        matching("**"),
        with_extensions("jpg"),
        directories("images").matching("**").with_extensions("jpg"),
    ])
    def test_traversal_always_rejected(self, validator):
        assert not validator.validate("images/../images/a.jpg")


class TestImmutability:
    def test_chaining_returns_new_instance(self):
        base = directories("images")
        extended = base.with_extensions("jpg")
        assert extended is not base
        assert base.extension_rules == frozenset()
        assert extended.extension_rules == frozenset({"jpg"})

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            directories("a").directory_rules = ()

    def test_list_arguments_flattened(self):
        assert directories(["a", "b"]).directory_rules == ("a/", "b/")


class TestBuildValidator:
    def test_none(self):
        assert build_validator(None) is None

    def test_rule_mapping(self):
        v = build_validator({"directories": ["images"], "extensions": ["jpg"]})
        assert isinstance(v, PathValidator)
        assert v.validate("images/a.jpg")
        assert not v.validate("images/a.png")

    def test_unknown_rule_rejected(self):
        with pytest.raises(MisconfigurationError):
            build_validator({"dirs": ["images"]})

    def test_callable_wrapped(self):
        v = build_validator(lambda p: p.startswith("ok/"))
        assert isinstance(v, CallableValidator)
        assert v.validate("ok/a.jpg")
        assert not v.validate("no/a.jpg")

    def test_compiled_validators_used_as_is(self):
        v = directories("a")
        assert build_validator(v) is v

    def test_object_wrapped(self):
        v = build_validator(OnlyPng())
        assert isinstance(v, CallableValidator)
        assert v.validate("a.png")
        assert not v.validate("a.jpg")

    def test_class_instantiated(self):
        v = build_validator(OnlyPng)
        assert isinstance(v, CallableValidator)
        assert v.validate("a.png")

    def test_class_without_validate_rejected(self):
        with pytest.raises(MisconfigurationError):
            build_validator(NoValidateMethod)

    def test_import_string(self):
        v = build_validator("posixpath:isabs")
        assert v.validate("/media/a.jpg")
        assert not v.validate("media/a.jpg")

    def test_dotted_import_string(self):
        v = build_validator("posixpath.isabs")
        assert isinstance(v, CallableValidator)

    def test_bad_import_string(self):
        with pytest.raises(MisconfigurationError):
            build_validator("no.such.module:thing")

    def test_unsupported_type(self):
        with pytest.raises(MisconfigurationError):
            build_validator(42)


def test_extension_of():
    assert extension_of("a/b.JPG") == "jpg"
    assert extension_of("a/b") == ""
    assert extension_of("a.dir/b") == ""
