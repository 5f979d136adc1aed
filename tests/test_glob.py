# tests/test_glob.py
"""Tests for imgproxy/core/glob.py"""
from __future__ import annotations

import pytest

from imgproxy.core.glob import compile_glob, glob_matches


class TestGlobMatches:
    @pytest.mark.parametrize("path,pattern", [
        ("images/a.jpg", "images/*.jpg"),
        ("images/a.jpg", "images/?.jpg"),
        ("images/a.jpg", "**/*.jpg"),
        ("a.jpg", "**/*.jpg"),
        ("images/2024/01/a.jpg", "images/**/*.jpg"),
        ("images/a.jpg", "images/**/*.jpg"),
        ("images/x/y", "images/**"),
    ])
    def test_matches(self, path, pattern):
        assert glob_matches(path, pattern)

    @pytest.mark.parametrize("path,pattern", [
        ("images/sub/a.jpg", "images/*.jpg"),   # * does not cross /
        ("images/ab.jpg", "images/?.jpg"),
        ("images/a.png", "images/*.jpg"),
        ("other/a.jpg", "images/**"),
        ("images/a.jpg.bak", "images/*.jpg"),   # anchored
    ])
    def test_no_match(self, path, pattern):
        assert not glob_matches(path, pattern)

    def test_regex_metacharacters_are_literal(self):
        assert glob_matches("img/a+b(1).jpg", "img/a+b(1).jpg")
        assert not glob_matches("img/aab1.jpg", "img/a+b(1).jpg")
        assert not glob_matches("imgXa.jpg", "img.a.jpg")

    def test_compiled_patterns_are_cached(self):
        assert compile_glob("x/*.png") is compile_glob("x/*.png")
