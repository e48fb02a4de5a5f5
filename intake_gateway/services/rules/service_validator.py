"""
Service Validator
Decides whether a requested service is part of the company's offering
"""

from intake_gateway.core.logging import get_logger
from intake_gateway.models.rules import ServiceDecision, ServiceReason, ServiceValidation
from .matching import contains_any, normalize_text

logger = get_logger(__name__)

REFUSED_KEYWORDS = ("fosse", "septique", "septic", "piscine", "pool", "goutti", "puisard", "vacuum")

ASSESSMENT_KEYWORDS = ("gainage", "relining", "drain francais complet", "sous dalle", "cheminee")

ACCEPTED_KEYWORDS = (
    "debouchage", "inspection", "camera", "racines", "alesage", "drain francais", "drain", "egout"
)

MESSAGES = {
    ServiceReason.SERVICE_NOT_OFFERED: (
        "Désolé, ce service n'est pas dans notre offre. Nous nous spécialisons dans "
        "les drains et égouts résidentiels et commerciaux."
    ),
    ServiceReason.REQUIRES_ASSESSMENT: (
        "Parfait! Ce service nécessite une évaluation sur place. "
        "Nous pouvons planifier une inspection."
    ),
    ServiceReason.SERVICE_AVAILABLE: "Parfait! On peut certainement vous aider avec ça.",
    ServiceReason.UNRECOGNIZED_SERVICE: (
        "Je vais transmettre votre demande à un technicien qui confirmera "
        "si nous pouvons vous aider."
    ),
}


def validate_service(requested: str) -> ServiceValidation:
    """
    Classify a free-text service request.

    Refused keywords win over assessment keywords, which win over accepted
    keywords. Text matching nothing is restricted as unrecognized.
    """
    text = normalize_text(requested)

    if contains_any(text, REFUSED_KEYWORDS):
        decision, reason = ServiceDecision.REFUSED, ServiceReason.SERVICE_NOT_OFFERED
    elif contains_any(text, ASSESSMENT_KEYWORDS):
        decision, reason = ServiceDecision.RESTRICTED, ServiceReason.REQUIRES_ASSESSMENT
    elif contains_any(text, ACCEPTED_KEYWORDS):
        decision, reason = ServiceDecision.ACCEPTED, ServiceReason.SERVICE_AVAILABLE
    else:
        decision, reason = ServiceDecision.RESTRICTED, ServiceReason.UNRECOGNIZED_SERVICE

    logger.info(f"Service request '{requested}': {decision.value} ({reason.value})")
    return ServiceValidation(
        service=requested or "",
        decision=decision,
        reason=reason,
        message=MESSAGES[reason],
    )
