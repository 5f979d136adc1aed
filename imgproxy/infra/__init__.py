# imgproxy/infra/__init__.py
"""Concrete collaborators: storage backends, image codec, counters, logging."""
