"""
API Routers
"""

from . import iterations, standup, work_items

__all__ = ["iterations", "standup", "work_items"]
