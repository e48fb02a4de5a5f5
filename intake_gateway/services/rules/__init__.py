"""Business rule engine: pure functions over extracted call data"""

from .service_validator import validate_service
from .priority import classify_priority
from .quote import calculate_quote, time_band
from .scheduling import evaluate_scheduling

__all__ = [
    "validate_service",
    "classify_priority",
    "calculate_quote",
    "time_band",
    "evaluate_scheduling",
]
