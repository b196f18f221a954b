"""
Shared FastAPI dependencies
"""

from functools import lru_cache

from ..config import Config
from ..services import Services, create_services


@lru_cache
def get_services() -> Services:
    """Services built from the saved configuration, shared across requests"""
    return create_services(Config.load())
