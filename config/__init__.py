"""
Módulo de configuración.
"""

from .settings import (
    ServiceConfig,
    BridgeConfig,
    LoggingConfig,
)

__all__ = [
    "ServiceConfig",
    "BridgeConfig",
    "LoggingConfig",
]
