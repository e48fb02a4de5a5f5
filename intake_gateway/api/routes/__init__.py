"""API Routes"""

from . import webhooks, health

__all__ = ["webhooks", "health"]
