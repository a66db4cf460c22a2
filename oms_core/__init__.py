# =============================================================================
# oms_core/__init__.py
# Operations Management System - Offline Sync Core
# =============================================================================
"""
Core package for the operations management app: offline write queue,
synchronization with the remote document store, and shared ambient
services (logging, errors, configuration).
"""

__version__ = "0.1.0"
