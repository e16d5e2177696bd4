"""Output modules - health/status reporting."""

from .health_server import HealthServer, HealthRequestHandler

__all__ = ['HealthServer', 'HealthRequestHandler']
