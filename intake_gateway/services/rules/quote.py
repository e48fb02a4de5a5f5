"""
Quote Calculator

Amounts are integer cents. Order of application:
    1. base band from the service price table
    2. fixed zone surcharge
    3. sum of percentage surcharges (time of day, urgency)
    4. rounding half-up to the nearest dollar
    5. min clamped to the service floor, max clamped to at least min
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, NamedTuple, Optional
from zoneinfo import ZoneInfo

from intake_gateway.models.rules import QuoteEstimate, QuoteFactors, TimeBand
from .matching import is_emergency, normalize_key


class PriceBand(NamedTuple):
    min: int
    max: int
    floor: int


MINIMUM_CALL_OUT = 35000

PRICE_TABLE: Dict[str, PriceBand] = {
    "debouchage": PriceBand(35000, 65000, MINIMUM_CALL_OUT),
    "debouchage_camera": PriceBand(35000, 65000, MINIMUM_CALL_OUT),
    "camera_inspection": PriceBand(35000, 35000, MINIMUM_CALL_OUT),
    "inspection": PriceBand(35000, 35000, MINIMUM_CALL_OUT),
    "racines_alesage": PriceBand(45000, 75000, MINIMUM_CALL_OUT),
    "gainage": PriceBand(35000, 75000, MINIMUM_CALL_OUT),
    "gainage_installation": PriceBand(390000, 800000, 390000),
    "drain_francais": PriceBand(50000, 80000, MINIMUM_CALL_OUT),
    "installation_cheminee": PriceBand(250000, 250000, 250000),
    "sous_dalle": PriceBand(35000, 100000, MINIMUM_CALL_OUT),
}
DEFAULT_BAND = PriceBand(35000, 50000, MINIMUM_CALL_OUT)

ZONE_SURCHARGES: Dict[str, int] = {
    "rive_sud": 10000,
}

TIME_BAND_RATES: Dict[TimeBand, int] = {
    TimeBand.BUSINESS_HOURS: 0,
    TimeBand.AFTER_HOURS: 25,
    TimeBand.OVERNIGHT: 50,
}
URGENCY_RATE = 30

BUSINESS_OPEN_HOUR = 6
BUSINESS_CLOSE_HOUR = 15
OVERNIGHT_START_HOUR = 22


def time_band(at: Optional[datetime], tz: str = "America/Montreal") -> TimeBand:
    """
    Time-of-day band for a moment.

    Aware datetimes are converted to the business time zone; naive ones are
    taken as local business time. No moment means business hours.
    """
    if at is None:
        return TimeBand.BUSINESS_HOURS
    if at.tzinfo is not None:
        at = at.astimezone(ZoneInfo(tz))

    if at.hour >= OVERNIGHT_START_HOUR or at.hour < BUSINESS_OPEN_HOUR:
        return TimeBand.OVERNIGHT
    if at.weekday() < 5 and at.hour < BUSINESS_CLOSE_HOUR:
        return TimeBand.BUSINESS_HOURS
    return TimeBand.AFTER_HOURS


def _round_to_dollar(cents: Decimal) -> int:
    dollars = (cents / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(dollars) * 100


def calculate_quote(
    service_type: Optional[str],
    zone: Optional[str] = None,
    urgency: Optional[str] = None,
    at: Optional[datetime] = None,
    currency: str = "CAD",
    tz: str = "America/Montreal",
) -> QuoteEstimate:
    """
    Price range for a service

    Args:
        service_type: Service key, e.g. "debouchage" (unknown keys use the default band)
        zone: Geographic zone, e.g. "rive_sud"
        urgency: Priority tier or urgency level; P1/critical adds the urgency surcharge
        at: Moment of the intervention, for the time-of-day surcharge
        currency: ISO currency code reported with the quote
        tz: Business time zone

    Returns:
        QuoteEstimate with min/max in cents
    """
    key = normalize_key(service_type)
    band = PRICE_TABLE.get(key, DEFAULT_BAND)
    zone_key = normalize_key(zone) or None
    zone_surcharge = ZONE_SURCHARGES.get(zone_key, 0) if zone_key else 0

    band_of_day = time_band(at, tz)
    time_rate = TIME_BAND_RATES[band_of_day]
    urgency_rate = URGENCY_RATE if is_emergency(urgency) else 0
    multiplier = Decimal(100 + time_rate + urgency_rate) / Decimal(100)

    min_price = _round_to_dollar(Decimal(band.min + zone_surcharge) * multiplier)
    max_price = _round_to_dollar(Decimal(band.max + zone_surcharge) * multiplier)
    min_price = max(min_price, band.floor)
    max_price = max(max_price, min_price)

    message = f"Le prix varie entre {min_price // 100}$ et {max_price // 100}$ plus taxes."
    if zone_surcharge:
        message += f" Inclut un frais de déplacement de {zone_surcharge // 100}$."
    if time_rate or urgency_rate:
        message += " Prix ajusté selon l'heure et l'urgence de l'intervention."

    return QuoteEstimate(
        service_type=key or "default",
        min_price=min_price,
        max_price=max_price,
        currency=currency,
        factors=QuoteFactors(
            base_min=band.min,
            base_max=band.max,
            zone=zone_key,
            zone_surcharge=zone_surcharge,
            time_band=band_of_day,
            time_rate_percent=time_rate,
            urgency_rate_percent=urgency_rate,
            floor=band.floor,
        ),
        message=message,
    )
