"""
Módulo API del servicio.
Contiene rutas y modelos del gateway HTTP.
"""

from .routes import router

__all__ = ["router"]
