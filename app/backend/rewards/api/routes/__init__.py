"""
API route modules.
"""

from . import tasks

__all__ = ["tasks"]
