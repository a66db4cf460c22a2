"""
Entry point for Streamlit Cloud deployments that expect app.py.

The actual application code is in Welcome.py.
"""

import sys
import os

# Ensure the current directory is in the path
sys.path.insert(0, os.path.dirname(__file__))

import Welcome  # noqa: F401
