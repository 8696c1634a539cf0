# orbit_api/middleware/__init__.py
"""
ASGI middleware: request ids, request logging, authentication and rate limiting.
"""
