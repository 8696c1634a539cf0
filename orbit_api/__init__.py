# orbit_api/__init__.py
"""
Orbit ABM API: multi-tenant account-based marketing CRM.
"""

__version__ = "0.1.0"
