# orbit_api/routes/__init__.py
"""
API route handlers organized by domain.
"""
