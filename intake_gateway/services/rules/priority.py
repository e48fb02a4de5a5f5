"""
Priority Classifier
"""

from typing import Iterable, Optional, Union

from intake_gateway.models.rules import PriorityClassification, PriorityTier
from .matching import contains_any, join_keywords

EMERGENCY_KEYWORDS = (
    "inondation", "refoulement", "urgence", "debordement", "eau dans le sous sol", "emergency", "flood"
)
MUNICIPAL_KEYWORDS = ("municipalit", "ville de", "municipal", "city of")
HIGH_VALUE_KEYWORDS = ("gainage", "relining", "drain francais")

# Dollars
HIGH_VALUE_THRESHOLD = 3000

SLA_SECONDS = {
    PriorityTier.P1: 0,
    PriorityTier.P2: 120,
    PriorityTier.P3: 3600,
    PriorityTier.P4: 1800,
}


def classify_priority(
    keywords: Union[str, Iterable[Optional[str]], None],
    estimated_value: Optional[float] = None,
) -> PriorityClassification:
    """
    Map call keywords and an estimated job value to an urgency tier.

    Args:
        keywords: Free text, or any iterable of text fragments (order does not matter)
        estimated_value: Estimated job value in dollars

    Returns:
        The first matching tier, in order P1 emergency, P2 municipal,
        P3 high value, P4 standard
    """
    text = join_keywords(keywords)

    if contains_any(text, EMERGENCY_KEYWORDS):
        return PriorityClassification(
            tier=PriorityTier.P1,
            reason="urgence_immediate",
            sla_seconds=SLA_SECONDS[PriorityTier.P1],
            escalation_required=True,
        )

    if contains_any(text, MUNICIPAL_KEYWORDS):
        return PriorityClassification(
            tier=PriorityTier.P2,
            reason="municipal",
            sla_seconds=SLA_SECONDS[PriorityTier.P2],
        )

    high_value = estimated_value is not None and estimated_value >= HIGH_VALUE_THRESHOLD
    if high_value or contains_any(text, HIGH_VALUE_KEYWORDS):
        return PriorityClassification(
            tier=PriorityTier.P3,
            reason="high_value",
            sla_seconds=SLA_SECONDS[PriorityTier.P3],
        )

    return PriorityClassification(
        tier=PriorityTier.P4,
        reason="standard",
        sla_seconds=SLA_SECONDS[PriorityTier.P4],
    )
