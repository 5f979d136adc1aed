# imgproxy/infra/image_processor.py
"""
Pillow-backed image codec: decode, resize per fit mode, encode.

Security features:
- File size limits
- Format validation (magic bytes, not just extension)
- Decompression bomb protection (pixel limit checked before decoding)
- Re-encoding strips EXIF/metadata from every response
"""
from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageFile, ImageOps

from imgproxy.core.errors import EncodeFailureError
from imgproxy.core.transform import FitMode, TransformSpec
from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

# IMPORTANT: Do NOT allow truncated images!
# Truncated data decodes to black bands at the bottom; better to reject.
ImageFile.LOAD_TRUNCATED_IMAGES = False

# SECURITY: Decompression bomb protection.
# This is the PARSING limit; ImageConfig.max_pixels is checked per image.
Image.MAX_IMAGE_PIXELS = 50_000_000


class ImageError(EncodeFailureError):
    """Base exception for image processing errors"""
    pass


class ImageTooLargeError(ImageError):
    """Image file size or pixel count exceeds limit"""
    pass


class ImageInvalidFormatError(ImageError):
    """Image format not recognized or data corrupted"""
    pass


# Magic bytes for format detection
MAGIC_BYTES = {
    b'\xff\xd8\xff': "jpeg",
    b'\x89PNG\r\n\x1a\n': "png",
    b'GIF87a': "gif",
    b'GIF89a': "gif",
}

# Output format → (Pillow format, MIME type)
ENCODERS: dict[str, tuple[str, str]] = {
    "jpg": ("JPEG", "image/jpeg"),
    "jpeg": ("JPEG", "image/jpeg"),
    "png": ("PNG", "image/png"),
    "gif": ("GIF", "image/gif"),
    "webp": ("WEBP", "image/webp"),
}


@dataclass
class ImageConfig:
    """Configuration for image processing"""
    max_file_size_bytes: int = 20 * 1024 * 1024  # 20 MB
    max_pixels: int = 50_000_000


def detect_format(data: bytes) -> str | None:
    """
    Detect image format from magic bytes.
    More secure than relying on file extension.
    """
    for magic, fmt in MAGIC_BYTES.items():
        if data.startswith(magic):
            return fmt

    # WebP: RIFF....WEBP
    if data[:4] == b'RIFF' and len(data) > 11 and data[8:12] == b'WEBP':
        return "webp"

    return None


def _fit_box(size: tuple[int, int], width: int | None, height: int | None) -> tuple[int, int]:
    """Complete a partial box from the source aspect ratio."""
    w, h = size
    if width and height:
        return width, height
    if width:
        return width, max(1, round(h * width / w))
    return max(1, round(w * height / h)), height


def _scale(img: Image.Image, width: int | None, height: int | None, allow_upscale: bool) -> Image.Image:
    w, h = img.size
    ratios = []
    if width:
        ratios.append(width / w)
    if height:
        ratios.append(height / h)
    ratio = min(ratios)
    if not allow_upscale:
        ratio = min(ratio, 1.0)
    if ratio == 1.0:
        return img
    target = (max(1, round(w * ratio)), max(1, round(h * ratio)))
    return img.resize(target, Image.Resampling.LANCZOS)


def _pad_color(img: Image.Image):
    return (0, 0, 0, 0) if img.mode == "RGBA" else (255, 255, 255)


class PillowImageCodec:
    """ImageCodec implementation on Pillow."""

    def __init__(self, config: ImageConfig | None = None):
        self.config = config or ImageConfig()

    def decode(self, data: bytes) -> Image.Image:
        if len(data) > self.config.max_file_size_bytes:
            raise ImageTooLargeError(
                f"Image size {len(data)} bytes exceeds limit of {self.config.max_file_size_bytes} bytes"
            )

        if detect_format(data) is None:
            raise ImageInvalidFormatError("Unable to detect image format from file content")

        try:
            img = Image.open(io.BytesIO(data))
        except Image.DecompressionBombError as e:
            raise ImageTooLargeError(f"Decompression bomb detected: {e}")
        except OSError as e:
            logger.warning(f"Image parsing error (possible malformed file): {e}")
            raise ImageInvalidFormatError("Failed to decode image: corrupted or malformed")

        # Image.size is available without loading pixel data
        width, height = img.size
        if width * height > self.config.max_pixels:
            raise ImageTooLargeError(
                f"Image has {width * height:,} pixels, exceeds limit of {self.config.max_pixels:,}"
            )

        try:
            img.load()
        except Image.DecompressionBombError as e:
            raise ImageTooLargeError(f"Decompression bomb detected during load: {e}")
        except OSError as e:
            logger.warning(f"Image load error (possible malformed/truncated file): {e}")
            raise ImageInvalidFormatError("Failed to load image: corrupted, truncated, or malformed")

        # Honour camera orientation before any geometry is applied
        img = ImageOps.exif_transpose(img)

        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")

        logger.debug(f"Image decoded: {width}x{height} mode={img.mode}")
        return img

    def resize(self, img: Image.Image, spec: TransformSpec) -> Image.Image:
        if not spec.needs_resize:
            return img

        original = img.size

        if spec.fit is FitMode.SCALE:
            img = _scale(img, spec.width, spec.height, allow_upscale=True)
        elif spec.fit is FitMode.SCALEDOWN:
            img = _scale(img, spec.width, spec.height, allow_upscale=False)
        elif spec.fit is FitMode.COVER:
            box = _fit_box(img.size, spec.width, spec.height)
            img = ImageOps.fit(img, box, Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        elif spec.fit is FitMode.CONTAIN:
            box = _fit_box(img.size, spec.width, spec.height)
            img = ImageOps.pad(img, box, Image.Resampling.LANCZOS, color=_pad_color(img))
        elif spec.fit is FitMode.CROP:
            bw, bh = _fit_box(img.size, spec.width, spec.height)
            w, h = img.size
            bw, bh = min(bw, w), min(bh, h)
            left, top = (w - bw) // 2, (h - bh) // 2
            img = img.crop((left, top, left + bw, top + bh))

        logger.debug(f"Resized {original[0]}x{original[1]} -> {img.size[0]}x{img.size[1]} ({spec.fit.value})")
        return img

    def encode(self, img: Image.Image, fmt: str, quality: int) -> tuple[bytes, str]:
        encoder = ENCODERS.get(fmt.lower())
        if encoder is None:
            raise EncodeFailureError(f"Unsupported output format: {fmt}")
        pil_format, mime_type = encoder

        # JPEG has no alpha channel: flatten onto white
        if pil_format == "JPEG" and img.mode == "RGBA":
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background

        output = io.BytesIO()
        try:
            if pil_format == "JPEG":
                img.save(output, format="JPEG", quality=quality, optimize=True)
            elif pil_format == "WEBP":
                img.save(output, format="WEBP", quality=quality)
            elif pil_format == "PNG":
                img.save(output, format="PNG", optimize=True)
            else:
                img.save(output, format=pil_format)
        except (OSError, ValueError) as e:
            logger.error(f"Image encode failed: format={fmt}, error={e}")
            raise EncodeFailureError(f"Failed to encode image as {fmt}") from e

        return output.getvalue(), mime_type
