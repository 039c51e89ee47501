"""
Core module initialization.
Exports configuration, error and token utilities.
"""

from bistro.core.config import get_settings, Settings, EnvironmentMode
from bistro.core.security import TokenService, TokenClaims

__all__ = ["get_settings", "Settings", "EnvironmentMode", "TokenService", "TokenClaims"]
