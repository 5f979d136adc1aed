# imgproxy/transport/__init__.py
"""HTTP transport (FastAPI application, middleware, request security)."""
