"""Shared dependencies for routers."""
from typing import Optional

from env_data import EnvDataService

# Global instance - set by main.py during app startup
_env_service: Optional[EnvDataService] = None


def get_env_service() -> EnvDataService:
    """Dependency to get the environmental data service."""
    if _env_service is None:
        raise RuntimeError("Env data service not initialized. Ensure app is properly started.")
    return _env_service


def initialize_dependencies(env_service: Optional[EnvDataService]):
    """Initialize shared dependencies. Called from main.py during app startup and shutdown."""
    global _env_service
    _env_service = env_service
