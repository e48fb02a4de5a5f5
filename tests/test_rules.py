"""
Tests for the business rule engine
"""

import pytest
from datetime import datetime, timezone

from intake_gateway.models.rules import PriorityTier, ServiceDecision, ServiceReason, TimeBand
from intake_gateway.services.rules import (
    calculate_quote,
    classify_priority,
    evaluate_scheduling,
    time_band,
    validate_service,
)
from intake_gateway.services.rules.matching import normalize_key, normalize_text
from intake_gateway.services.rules.quote import DEFAULT_BAND, MINIMUM_CALL_OUT, PRICE_TABLE

# Monday 2 March 2026, local business time
MONDAY_MORNING = datetime(2026, 3, 2, 10, 0)
MONDAY_EVENING = datetime(2026, 3, 2, 16, 0)
MONDAY_NIGHT = datetime(2026, 3, 2, 23, 0)
SATURDAY_MORNING = datetime(2026, 3, 7, 10, 0)


class TestMatching:
    """Tests for text normalisation"""

    def test_normalize_text(self):
        """Test accents, case, hyphens and underscores are normalised"""
        assert normalize_text("  Débouchage_Caméra ") == "debouchage camera"
        assert normalize_text("Rive-Sud") == "rive sud"
        assert normalize_text(None) == ""

    def test_normalize_key(self):
        """Test identifier form uses underscores"""
        assert normalize_key("Drain Français") == "drain_francais"


class TestServiceValidator:
    """Tests for validate_service"""

    def test_accepted_service(self):
        """Test core drain services are accepted"""
        result = validate_service("Débouchage de drain")
        assert result.decision == ServiceDecision.ACCEPTED
        assert result.reason == ServiceReason.SERVICE_AVAILABLE
        assert result.accepted is True

    def test_refused_service(self):
        """Test services outside the offering are refused"""
        result = validate_service("Vidange de fosse septique")
        assert result.decision == ServiceDecision.REFUSED
        assert result.reason == ServiceReason.SERVICE_NOT_OFFERED
        assert result.accepted is False

    def test_refusal_wins_over_acceptance(self):
        """Test a refused keyword beats an accepted one in the same request"""
        assert validate_service("drain de piscine").decision == ServiceDecision.REFUSED

    def test_assessment_required(self):
        """Test relining work is restricted pending an on-site assessment"""
        result = validate_service("Gainage du drain principal")
        assert result.decision == ServiceDecision.RESTRICTED
        assert result.reason == ServiceReason.REQUIRES_ASSESSMENT

    def test_unrecognized_service(self):
        """Test unknown requests are restricted, not accepted"""
        result = validate_service("Réparer ma toiture")
        assert result.decision == ServiceDecision.RESTRICTED
        assert result.reason == ServiceReason.UNRECOGNIZED_SERVICE
        assert result.message


class TestPriorityClassifier:
    """Tests for classify_priority"""

    @pytest.mark.parametrize("text", [
        "Inondation au sous-sol",
        "REFOULEMENT d'égout",
        "débordement de la toilette",
        "c'est une urgence",
    ])
    def test_emergency_is_p1(self, text):
        """Test emergency keywords give P1 with immediate escalation"""
        result = classify_priority(text)
        assert result.tier == PriorityTier.P1
        assert result.sla_seconds == 0
        assert result.escalation_required is True
        assert result.reason == "urgence_immediate"

    def test_municipal_is_p2(self):
        """Test municipal clients give P2 with a two-minute target"""
        result = classify_priority("Appel de la Ville de Longueuil")
        assert result.tier == PriorityTier.P2
        assert result.sla_seconds == 120

    def test_high_value_keyword_is_p3(self):
        """Test high-value services give P3"""
        result = classify_priority("Soumission pour gainage")
        assert result.tier == PriorityTier.P3
        assert result.sla_seconds == 3600

    def test_high_value_threshold(self):
        """Test the estimated value threshold is inclusive"""
        assert classify_priority("débouchage", 3000).tier == PriorityTier.P3
        assert classify_priority("débouchage", 2999.99).tier == PriorityTier.P4

    def test_standard_is_p4(self):
        """Test anything else is standard"""
        result = classify_priority("Drain lent dans la cuisine")
        assert result.tier == PriorityTier.P4
        assert result.sla_seconds == 1800
        assert result.escalation_required is False

    def test_precedence_across_fragments(self):
        """Test the most urgent tier wins regardless of fragment order"""
        fragments = ["ville de Brossard", None, "gainage", "refoulement"]
        assert classify_priority(fragments, 10000).tier == PriorityTier.P1
        assert classify_priority(list(reversed(fragments)), 10000).tier == PriorityTier.P1

    def test_empty_input(self):
        """Test no keywords classifies as standard"""
        assert classify_priority(None).tier == PriorityTier.P4
        assert classify_priority([]).tier == PriorityTier.P4


class TestTimeBand:
    """Tests for time_band"""

    @pytest.mark.parametrize("moment,expected", [
        (datetime(2026, 3, 2, 5, 59), TimeBand.OVERNIGHT),
        (datetime(2026, 3, 2, 6, 0), TimeBand.BUSINESS_HOURS),
        (datetime(2026, 3, 2, 14, 59), TimeBand.BUSINESS_HOURS),
        (datetime(2026, 3, 2, 15, 0), TimeBand.AFTER_HOURS),
        (datetime(2026, 3, 2, 22, 0), TimeBand.OVERNIGHT),
        (SATURDAY_MORNING, TimeBand.AFTER_HOURS),
    ])
    def test_bands(self, moment, expected):
        """Test band boundaries on local times"""
        assert time_band(moment) == expected

    def test_aware_time_converted(self):
        """Test aware times are converted to the business time zone"""
        # 15:00 UTC is 10:00 in Montreal (EST)
        assert time_band(datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)) == TimeBand.BUSINESS_HOURS
        # 20:00 UTC is 15:00 in Montreal
        assert time_band(datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)) == TimeBand.AFTER_HOURS

    def test_no_moment(self):
        """Test no moment means business hours"""
        assert time_band(None) == TimeBand.BUSINESS_HOURS


class TestQuoteCalculator:
    """Tests for calculate_quote"""

    def test_base_band(self):
        """Test business-hours quote is the base band"""
        quote = calculate_quote("debouchage", at=MONDAY_MORNING)
        assert (quote.min_price, quote.max_price) == (35000, 65000)
        assert quote.currency == "CAD"
        assert quote.factors.time_band == TimeBand.BUSINESS_HOURS
        assert "350$" in quote.message and "650$" in quote.message

    def test_zone_surcharge(self):
        """Test the fixed zone surcharge is added to both bounds"""
        quote = calculate_quote("Débouchage", zone="Rive-Sud", at=MONDAY_MORNING)
        assert (quote.min_price, quote.max_price) == (45000, 75000)
        assert quote.factors.zone == "rive_sud"
        assert quote.factors.zone_surcharge == 10000

    def test_after_hours_rounds_half_up(self):
        """Test percentage surcharges round half-up to the dollar"""
        quote = calculate_quote("debouchage", at=MONDAY_EVENING)
        # 350 * 1.25 = 437.50 and 650 * 1.25 = 812.50
        assert (quote.min_price, quote.max_price) == (43800, 81300)
        assert quote.factors.time_rate_percent == 25

    def test_percentages_are_additive(self):
        """Test overnight and urgency surcharges add up before applying"""
        quote = calculate_quote("debouchage", urgency="P1", at=MONDAY_NIGHT)
        assert quote.factors.time_rate_percent == 50
        assert quote.factors.urgency_rate_percent == 30
        assert (quote.min_price, quote.max_price) == (63000, 117000)

    def test_critical_urgency(self):
        """Test the agent's 'critical' level counts as an emergency"""
        quote = calculate_quote("inspection", urgency="critical", at=MONDAY_MORNING)
        assert (quote.min_price, quote.max_price) == (45500, 45500)

    def test_zone_applied_before_percentages(self):
        """Test the zone surcharge is part of the amount the percentages scale"""
        quote = calculate_quote("debouchage", zone="rive_sud", at=MONDAY_EVENING)
        # (350 + 100) * 1.25 = 562.50 and (650 + 100) * 1.25 = 937.50
        assert (quote.min_price, quote.max_price) == (56300, 93800)

    def test_floor_and_fixed_price(self):
        """Test fixed-price services never drop below their floor"""
        quote = calculate_quote("installation_cheminee", at=MONDAY_MORNING)
        assert quote.min_price == quote.max_price == 250000
        assert quote.factors.floor == 250000

    @pytest.mark.parametrize("service", [*PRICE_TABLE, "service_inconnu", None])
    @pytest.mark.parametrize("zone", [None, "rive_sud", "montreal"])
    @pytest.mark.parametrize("urgency", [None, "P1", "P2", "P4", "critical", "low"])
    @pytest.mark.parametrize("at", [MONDAY_MORNING, MONDAY_EVENING, MONDAY_NIGHT, SATURDAY_MORNING])
    def test_never_below_floor(self, service, zone, urgency, at):
        """Test every service, zone, urgency and time band stays at or above the floor"""
        quote = calculate_quote(service, zone=zone, urgency=urgency, at=at)
        band = PRICE_TABLE.get(service, DEFAULT_BAND)
        assert quote.min_price >= band.floor
        assert quote.min_price >= MINIMUM_CALL_OUT
        assert quote.max_price >= quote.min_price
        assert quote.min_price % 100 == 0 and quote.max_price % 100 == 0

    def test_unknown_service_uses_default_band(self):
        """Test unknown services fall back to the default band"""
        quote = calculate_quote(None, at=MONDAY_MORNING)
        assert quote.service_type == "default"
        assert (quote.min_price, quote.max_price) == (35000, 50000)

    def test_unknown_zone_has_no_surcharge(self):
        """Test zones without a surcharge add nothing"""
        quote = calculate_quote("debouchage", zone="montreal", at=MONDAY_MORNING)
        assert quote.factors.zone_surcharge == 0
        assert quote.min_price == 35000

    def test_dollar_helpers(self):
        """Test dollar properties truncate cents"""
        quote = calculate_quote("racines_alesage", at=MONDAY_MORNING)
        assert (quote.min_dollars, quote.max_dollars) == (450, 750)


class TestScheduling:
    """Tests for evaluate_scheduling"""

    def test_service_window(self):
        """Test the usual lead time for a service"""
        window = evaluate_scheduling("drain_francais")
        assert window.window == "1 à 3 semaines"
        assert window.assessment_required is False
        assert len(window.requirements) == 2

    def test_assessment_services(self):
        """Test relining requires an on-site assessment"""
        window = evaluate_scheduling("gainage")
        assert window.assessment_required is True
        assert "évaluation sur place" in window.message

    @pytest.mark.parametrize("urgency", ["P1", "critical"])
    def test_emergency_window(self, urgency):
        """Test emergencies are scheduled the same day"""
        assert evaluate_scheduling("debouchage", urgency).window == "Même journée ou 24h"

    def test_municipal_window(self):
        """Test P2 gets a one-to-two business day window"""
        assert evaluate_scheduling("inspection", "P2").window == "1 à 2 jours ouvrables"

    def test_unknown_service(self):
        """Test unknown services get the default window and requirements"""
        window = evaluate_scheduling("toiture")
        assert window.window == "3 à 5 jours ouvrables"
        assert window.requirements == ["Accès à la propriété"]
