"""
Test fixtures for Script Layers

This package contains fixtures used for testing:
- Sample scripts (scripts/greeting.py, scripts/helper.py, ...)
- A mutable mock source
- Helpers to compile layers from inline script text
"""

import os

# Path to fixtures directory
FIXTURES_DIR = os.path.dirname(__file__)
SCRIPTS_DIR = os.path.join(FIXTURES_DIR, 'scripts')
