# imgproxy/core/transform.py
"""
Options → TransformSpec mapping with bounds checking.

Every check runs on every call so that a single pass reports all invalid
options; the first failure is raised and carries the full list in
``errors``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from imgproxy.core.errors import (
    InvalidDimensionError,
    InvalidFitError,
    InvalidFormatError,
    InvalidOptionError,
    InvalidQualityError,
)

DEFAULT_ALLOWED_FORMATS: frozenset[str] = frozenset({"jpg", "jpeg", "png", "gif", "webp"})


class FitMode(str, Enum):
    """Resize strategy"""
    SCALE = "scale"          # fit inside the box, upscaling allowed
    SCALEDOWN = "scaledown"  # fit inside the box, never upscale
    COVER = "cover"          # fill the box, crop the overflow
    CONTAIN = "contain"      # fit inside the box, pad to the box
    CROP = "crop"            # cut the box out of the center, no resampling


@dataclass(frozen=True)
class TransformLimits:
    max_width: int = 2000
    max_height: int = 2000
    allowed_widths: frozenset[int] | None = None
    allowed_heights: frozenset[int] | None = None
    allowed_formats: frozenset[str] = DEFAULT_ALLOWED_FORMATS
    quality_default: int = 85


@dataclass(frozen=True)
class TransformSpec:
    width: int | None
    height: int | None
    fit: FitMode
    quality: int
    format: str

    @property
    def needs_resize(self) -> bool:
        return self.width is not None or self.height is not None


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _check_dimension(
    name: str,
    raw: str | None,
    maximum: int,
    allowed: frozenset[int] | None,
) -> tuple[int | None, InvalidOptionError | None]:
    value = _parse_int(raw)
    if value is None:
        return None, InvalidDimensionError(f"Invalid {name}")

    if allowed is not None:
        if value not in allowed:
            return None, InvalidDimensionError(f"Invalid {name}")
    elif not 1 <= value <= maximum:
        return None, InvalidDimensionError(f"Invalid {name}")

    return value, None


def build_transform_spec(
    options: Mapping[str, str | None],
    source_extension: str,
    limits: TransformLimits,
) -> TransformSpec:
    """
    Validate parsed options against ``limits``.

    Raises:
        InvalidDimensionError / InvalidFitError / InvalidQualityError /
        InvalidFormatError: first failure found; ``exc.errors`` holds all.
    """
    errors: list[InvalidOptionError] = []

    width = height = None
    if "width" in options:
        width, error = _check_dimension("width", options["width"], limits.max_width, limits.allowed_widths)
        if error:
            errors.append(error)

    if "height" in options:
        height, error = _check_dimension("height", options["height"], limits.max_height, limits.allowed_heights)
        if error:
            errors.append(error)

    fit = FitMode.SCALEDOWN
    if "fit" in options:
        raw_fit = (options["fit"] or "").lower()
        try:
            fit = FitMode(raw_fit)
        except ValueError:
            errors.append(InvalidFitError("Invalid fit"))

    quality = limits.quality_default
    if "quality" in options:
        parsed = _parse_int(options["quality"])
        if parsed is None or not 1 <= parsed <= 100:
            errors.append(InvalidQualityError("Quality must be between 1 and 100"))
        else:
            quality = parsed

    fmt = source_extension.lower()
    if "format" in options:
        requested = (options["format"] or "").lower()
        if requested not in limits.allowed_formats:
            errors.append(InvalidFormatError("Invalid format"))
        else:
            fmt = requested

    if errors:
        first = errors[0]
        first.errors = tuple(errors)
        raise first

    return TransformSpec(width=width, height=height, fit=fit, quality=quality, format=fmt)
