# imgproxy/__init__.py
"""On-the-fly image transformation proxy."""

__version__ = "1.0.0"
