# orbit_api/services/__init__.py
"""
Domain services: imports, email queue and events, research scoring.
"""
