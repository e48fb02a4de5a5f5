"""API module"""

from .routes import webhooks, health

__all__ = ["webhooks", "health"]
