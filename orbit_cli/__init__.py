# orbit_cli/__init__.py
"""
Command-line tools for operating the Orbit ABM API.
"""
