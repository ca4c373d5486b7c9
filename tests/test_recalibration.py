"""
Unit tests for confidence recalibration.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from permitverify.models import Classification, Record, SignalStrength, TradeOpportunities
from permitverify.scoring.maintenance import is_maintenance_like
from permitverify.scoring.recalibrator import ConfidenceRecalibrator


def never_maintenance(description, permit_type):
    return False


def always_maintenance(description, permit_type):
    return True


class TestConfidenceRecalibrator:
    """Test cases for confidence recalibration."""

    def setup_method(self):
        """Setup test fixtures."""
        self.recalibrator = ConfidenceRecalibrator(maintenance_classifier=never_maintenance)

    def test_floor_and_small_project_cap(self):
        """Test the None floor combined with the small-project cap."""
        raw = {"confidence_score": 0, "signal_strength": "None"}
        assert self.recalibrator.recalibrate(raw, "Tenant improvement", "Commercial", 3000) == 5

    def test_signal_floors(self):
        """Test that tier labels raise the score to their floor."""
        cases = {
            "Tier 1": 85, "Very Strong": 85,
            "Tier 2": 72, "Strong": 72,
            "Tier 3": 50, "Moderate": 50,
            "Weak": 25, "None": 5
        }
        for label, floor in cases.items():
            raw = {"confidence_score": 1, "signal_strength": label}
            assert self.recalibrator.recalibrate(raw, "", "", 20000) == floor

        # The floor never lowers a score
        raw = {"confidence_score": 95, "signal_strength": "Weak"}
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 95

    def test_unknown_signal_label(self):
        """Test that unknown labels leave the score untouched."""
        raw = {"confidence_score": 10, "signal_strength": "Legendary"}
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 10

    def test_signal_balance_penalty(self):
        """Test the penalty for more negative than positive signals."""
        raw = {
            "confidence_score": 60,
            "positive_signals": ["new construction"],
            "negative_signals": ["residential", "repair", "small scope"]
        }
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 36

        raw["confidence_score"] = 10
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 0

    def test_trade_bonus(self):
        """Test +5 per trade opportunity."""
        raw = Classification(
            confidence_score=50,
            trade_opportunities=TradeOpportunities(security_integrator=True, signage=True, low_voltage_it=True)
        )
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 65

    def test_valuation_tiebreak(self):
        """Test valuation-based adjustments."""
        raw = {"confidence_score": 50}
        assert self.recalibrator.recalibrate(raw, "", "", 20000) == 50
        assert self.recalibrator.recalibrate(raw, "", "", 50000) == 55
        assert self.recalibrator.recalibrate(raw, "", "", 99999) == 55
        assert self.recalibrator.recalibrate(raw, "", "", 100000) == 62
        assert self.recalibrator.recalibrate({"confidence_score": 80}, "", "", 1000) == 40
        assert self.recalibrator.recalibrate({"confidence_score": 95}, "", "", 500000) == 100

    def test_maintenance_cap(self):
        """Test that maintenance work is capped regardless of other signals."""
        recalibrator = ConfidenceRecalibrator(maintenance_classifier=always_maintenance)
        raw = {
            "confidence_score": 100,
            "signal_strength": "Very Strong",
            "trade_opportunities": {"security_integrator": True, "signage": True, "low_voltage_it": True}
        }
        assert recalibrator.recalibrate(raw, "New build", "Commercial", 5000000) <= 30

    def test_default_maintenance_heuristic(self):
        """Test the keyword heuristic wired in by default."""
        recalibrator = ConfidenceRecalibrator()
        raw = {"confidence_score": 100, "signal_strength": "Very Strong"}

        assert recalibrator.recalibrate(raw, "Roof repair after hail", "Commercial", 200000) == 30
        assert recalibrator.recalibrate(raw, "New retail shell", "Commercial Remodel", 200000) == 100

    def test_configured_maintenance_keywords(self):
        """Test configurable maintenance keywords."""
        recalibrator = ConfidenceRecalibrator({"maintenance_keywords": ["demolition"]})
        raw = {"confidence_score": 90}

        assert recalibrator.recalibrate(raw, "Interior demolition", "", 20000) == 30
        assert recalibrator.recalibrate(raw, "Roof repair", "", 20000) == 90

    def test_score_bounds(self):
        """Test 0 <= recalibrate(...) <= 100."""
        for confidence in (-500, -1, 0, 50, 100, 1000):
            for label in (None, "Tier 1", "Weak", "None"):
                for valuation in (0, 4999, 60000, 1e7, float("nan")):
                    raw = {"confidence_score": confidence, "signal_strength": label,
                           "negative_signals": ["a", "b"]}
                    score = self.recalibrator.recalibrate(raw, "", "", valuation)
                    assert 0 <= score <= 100

    def test_missing_and_malformed_payload(self):
        """Test that missing or malformed payloads never raise."""
        assert self.recalibrator.recalibrate(None, None, None, None) == 0
        assert self.recalibrator.recalibrate({"confidence_score": "high"}, "", "", 20000) == 0

    def test_from_raw_rounds_half_up(self):
        """Test that fractional confidence scores round half up."""
        assert Classification.from_raw({"confidence_score": 72.5}).confidence_score == 73
        assert Classification.from_raw({"confidence_score": 71.5}).confidence_score == 72
        assert Classification.from_raw({"confidence_score": 71.4}).confidence_score == 71
        assert Classification.from_raw({"confidence_score": float("inf")}).confidence_score == 0

    def test_map_classification_trigger(self):
        """Test that low confidence forces the commercial trigger off."""
        raw = {"confidence_score": 20, "is_commercial_trigger": True}
        mapped = self.recalibrator.map_classification(raw, "", "", 20000)
        assert mapped.confidence_score == 20
        assert not mapped.is_commercial_trigger

        raw = {"confidence_score": 80, "is_commercial_trigger": True, "signal_strength": "Strong"}
        mapped = self.recalibrator.map_classification(raw, "", "", 20000)
        assert mapped.confidence_score == 80
        assert mapped.is_commercial_trigger
        assert mapped.signal_strength == SignalStrength.STRONG

        raw = {"confidence_score": 80, "is_commercial_trigger": False}
        assert not self.recalibrator.map_classification(raw, "", "", 20000).is_commercial_trigger

    def test_recalibrate_records(self):
        """Test batch recalibration."""
        records = [
            Record(id="1", valuation=3000, classification=Classification(
                confidence_score=0, signal_strength=SignalStrength.NONE)),
            Record(id="2", valuation=3000),
        ]

        result = self.recalibrator.recalibrate_records(records)

        assert result[0].classification.confidence_score == 5
        assert result[1].classification is None
        assert records[0].classification.confidence_score == 0


class TestMaintenanceHeuristic:
    """Test cases for the maintenance keyword heuristic."""

    def test_keyword_matches(self):
        """Test keyword hits in description or permit type."""
        assert is_maintenance_like("Replace HVAC unit", "Mechanical")
        assert is_maintenance_like("New office", "Repair")
        assert is_maintenance_like("PARKING LOT restripe", "")
        # Substring match
        assert is_maintenance_like("Light fixture install", "Electrical")

    def test_no_match(self):
        """Test descriptions without maintenance keywords."""
        assert not is_maintenance_like("New restaurant buildout", "Commercial New")
        assert not is_maintenance_like(None, None)
        assert not is_maintenance_like("", "")


if __name__ == "__main__":
    pytest.main([__file__])
