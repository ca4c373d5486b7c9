"""
Data models for PermitVerify.

Defines the permit record shared by every stage of the pipeline and the
validated classification payload produced by the upstream classifier.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .utils import round_half_up

logger = logging.getLogger(__name__)

KNOWN_CITIES = ["Dallas", "Fort Worth", "Plano", "Frisco", "Irving", "Arlington"]


class SignalStrength(str, Enum):
    """Qualitative signal-strength labels emitted by the classifier."""
    TIER_1 = "Tier 1"
    TIER_2 = "Tier 2"
    TIER_3 = "Tier 3"
    VERY_STRONG = "Very Strong"
    STRONG = "Strong"
    MODERATE = "Moderate"
    WEAK = "Weak"
    NONE = "None"

    @classmethod
    def parse(cls, label: Any) -> Optional["SignalStrength"]:
        """Return the matching label, or None for absent/unknown labels."""
        if label is None or label == "":
            return None
        if isinstance(label, cls):
            return label
        try:
            return cls(str(label).strip())
        except ValueError:
            logger.warning(f"Unknown signal strength label '{label}', ignoring")
            return None


@dataclass
class TradeOpportunities:
    """Trade flags a permit may open up for a contractor."""
    security_integrator: bool = False
    signage: bool = False
    low_voltage_it: bool = False

    def count(self) -> int:
        return sum(1 for flag in (self.security_integrator, self.signage, self.low_voltage_it) if flag)


@dataclass
class Classification:
    """
    Validated classification result for a single permit.

    confidence_score is kept exactly as received (it may be out of range);
    clamping happens in the recalibrator and the lead scorer.
    """
    confidence_score: int = 0
    signal_strength: Optional[SignalStrength] = None
    positive_signals: List[str] = field(default_factory=list)
    negative_signals: List[str] = field(default_factory=list)
    trade_opportunities: TradeOpportunities = field(default_factory=TradeOpportunities)
    is_commercial_trigger: bool = False
    project_type: str = "Maintenance/Repair"
    reasoning: str = ""

    @classmethod
    def from_raw(cls, payload: Optional[Dict[str, Any]]) -> "Classification":
        """
        Build a classification from the snake_case classifier payload.

        Args:
            payload: Raw response dictionary (may be None or partial)

        Returns:
            Classification with defaults for every missing field
        """
        if not payload:
            return cls.unknown()

        try:
            confidence = round_half_up(float(payload.get("confidence_score") or 0))
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Non-numeric confidence score {payload.get('confidence_score')!r}, using 0")
            confidence = 0

        trades = payload.get("trade_opportunities") or {}

        return cls(
            confidence_score=confidence,
            signal_strength=SignalStrength.parse(payload.get("signal_strength")),
            positive_signals=[str(s) for s in payload.get("positive_signals") or []],
            negative_signals=[str(s) for s in payload.get("negative_signals") or []],
            trade_opportunities=TradeOpportunities(
                security_integrator=bool(trades.get("security_integrator", False)),
                signage=bool(trades.get("signage", False)),
                low_voltage_it=bool(trades.get("low_voltage_it", False)),
            ),
            is_commercial_trigger=bool(payload.get("is_commercial_trigger", False)),
            project_type=payload.get("project_type") or "Maintenance/Repair",
            reasoning=payload.get("reasoning") or "",
        )

    @classmethod
    def unknown(cls) -> "Classification":
        """Fully zeroed classification used when the classifier call fails."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_score": self.confidence_score,
            "signal_strength": self.signal_strength.value if self.signal_strength else None,
            "positive_signals": list(self.positive_signals),
            "negative_signals": list(self.negative_signals),
            "trade_opportunities": {
                "security_integrator": self.trade_opportunities.security_integrator,
                "signage": self.trade_opportunities.signage,
                "low_voltage_it": self.trade_opportunities.low_voltage_it,
            },
            "is_commercial_trigger": self.is_commercial_trigger,
            "project_type": self.project_type,
            "reasoning": self.reasoning,
        }


@dataclass
class Enrichment:
    """Result of an external registry lookup."""
    verified: bool = False
    registry: Optional[str] = None


@dataclass
class Record:
    """
    Canonical permit record used internally by PermitVerify.

    Records are treated as values: resolution, recalibration and scoring
    return new records via dataclasses.replace() and never mutate inputs.
    """
    id: str
    address: str = ""
    city: str = ""
    valuation: float = 0.0
    applied_date: Union[str, date, datetime, None] = None
    data_source: str = ""
    description: str = ""
    permit_type: str = ""

    # Set by the upstream geocoder, (latitude, longitude)
    coordinates: Optional[Tuple[float, float]] = None

    classification: Optional[Classification] = None
    enrichment: Optional[Enrichment] = None

    # Derived by this package
    score: Optional[int] = None
    is_high_quality: bool = False
    merged_with: List[str] = field(default_factory=list)

    def all_ids(self) -> List[str]:
        """Own id followed by every id folded into this record."""
        return [self.id] + list(self.merged_with)
