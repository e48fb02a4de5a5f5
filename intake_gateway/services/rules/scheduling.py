"""
Scheduling Evaluator
"""

from typing import Optional

from intake_gateway.models.rules import SchedulingWindow
from .matching import is_emergency, normalize_key, normalize_text

DEFAULT_WINDOW = "3 à 5 jours ouvrables"

SCHEDULING_WINDOWS = {
    "drain_francais": "1 à 3 semaines",
    "inspection": "1 à 2 semaines",
    "camera_inspection": "3 à 5 jours ouvrables",
    "gainage": "2 à 4 semaines",
    "gainage_installation": "2 à 4 semaines",
    "sous_dalle": "2 à 4 semaines",
    "installation_cheminee": "2 à 4 semaines",
    "debouchage": "3 à 5 jours ouvrables",
    "debouchage_camera": "3 à 5 jours ouvrables",
    "racines_alesage": "3 à 5 jours ouvrables",
}

EMERGENCY_WINDOW = "Même journée ou 24h"
MUNICIPAL_WINDOW = "1 à 2 jours ouvrables"

ASSESSMENT_SERVICES = frozenset({"gainage", "gainage_installation", "sous_dalle", "installation_cheminee"})

DEFAULT_REQUIREMENTS = ["Accès à la propriété"]
SERVICE_REQUIREMENTS = {
    "drain_francais": ["Accès au périmètre de la propriété", "Localisation des services publics"],
    "gainage": ["Inspection vidéo préalable", "Accès aux regards d'accès"],
    "gainage_installation": ["Inspection vidéo préalable", "Accès aux regards d'accès"],
    "sous_dalle": ["Inspection vidéo préalable", "Accès au plancher du sous-sol"],
    "installation_cheminee": ["Évaluation sur place", "Accès aux regards d'accès"],
    "inspection": ["Accès aux regards d'accès"],
}


def evaluate_scheduling(
    service_type: Optional[str],
    urgency: Optional[str] = None,
) -> SchedulingWindow:
    """
    Textual availability window for a service.

    P1 (or 'critical') urgency gives a same-day window and P2 a one-to-two
    business day window; otherwise the service's usual lead time applies.
    """
    key = normalize_key(service_type)
    window = SCHEDULING_WINDOWS.get(key, DEFAULT_WINDOW)
    message = f"Nous pouvons planifier dans {window}."

    if is_emergency(urgency):
        window = EMERGENCY_WINDOW
        message = "Urgence détectée. Nous pouvons intervenir aujourd'hui même ou demain matin."
    elif normalize_text(urgency) == "p2":
        window = MUNICIPAL_WINDOW
        message = "Client municipal - priorité élevée. Intervention dans 1 à 2 jours ouvrables."

    assessment_required = key in ASSESSMENT_SERVICES
    if assessment_required:
        message += " Une évaluation sur place est requise avant les travaux."

    return SchedulingWindow(
        service_type=key or "default",
        window=window,
        assessment_required=assessment_required,
        message=message,
        requirements=list(SERVICE_REQUIREMENTS.get(key, DEFAULT_REQUIREMENTS)),
    )
