"""
Confidence recalibration for PermitVerify.

Adjusts the classifier's raw confidence with business rules before lead
scoring: tier floors, a signal-balance penalty, trade-opportunity bonuses,
valuation tiebreaks and a hard cap for maintenance work.
"""

import logging
import math
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..models import Classification, Record
from ..utils import clamp, round_half_up
from .maintenance import MAINTENANCE_KEYWORDS, is_maintenance_like

logger = logging.getLogger(__name__)

MaintenanceClassifier = Callable[[str, str], bool]

DEFAULT_SIGNAL_FLOORS = {
    "Tier 1": 85, "Very Strong": 85,
    "Tier 2": 72, "Strong": 72,
    "Tier 3": 50, "Moderate": 50,
    "Weak": 25,
    "None": 5
}


class ConfidenceRecalibrator:
    """
    Recalibrates raw classification confidence into a 0-100 score.

    Steps run in a fixed order, each acting on the running score:
    signal floor, signal balance, trade bonus, valuation tiebreak,
    maintenance cap, final clamp.
    """

    def __init__(self, config: Optional[Dict] = None,
                 maintenance_classifier: Optional[MaintenanceClassifier] = None):
        """
        Initialize recalibrator with configuration.

        Args:
            config: Recalibration section of the configuration
            maintenance_classifier: Callable (description, permit_type) -> bool;
                defaults to the keyword heuristic
        """
        self.config = config or {}
        self.signal_floors = self.config.get("signal_floors", DEFAULT_SIGNAL_FLOORS)
        self.imbalance_penalty = self.config.get("imbalance_penalty", 12)
        self.trade_bonus = self.config.get("trade_bonus", 5)
        self.small_project_valuation = self.config.get("small_project_valuation", 5000)
        self.small_project_cap = self.config.get("small_project_cap", 40)
        self.mid_range_valuation = self.config.get("mid_range_valuation", 50000)
        self.mid_range_bonus = self.config.get("mid_range_bonus", 5)
        self.high_value_valuation = self.config.get("high_value_valuation", 100000)
        self.high_value_bonus = self.config.get("high_value_bonus", 12)
        self.maintenance_cap = self.config.get("maintenance_cap", 30)
        self.commercial_trigger_min = self.config.get("commercial_trigger_min", 35)

        if maintenance_classifier is None:
            keywords = self.config.get("maintenance_keywords", MAINTENANCE_KEYWORDS)
            maintenance_classifier = partial(is_maintenance_like, keywords=keywords)
        self.maintenance_classifier = maintenance_classifier

        logger.info("Initialized ConfidenceRecalibrator")

    def apply_signal_floor(self, score: float, raw: Classification) -> float:
        if raw.signal_strength is None:
            return score
        floor = self.signal_floors.get(raw.signal_strength.value)
        if floor is None:
            return score
        return max(score, floor)

    def apply_signal_balance(self, score: float, raw: Classification) -> float:
        positive_count = len(raw.positive_signals)
        negative_count = len(raw.negative_signals)
        if negative_count > positive_count:
            score = max(0, score - self.imbalance_penalty * (negative_count - positive_count))
        return score

    def apply_trade_bonus(self, score: float, raw: Classification) -> float:
        return score + raw.trade_opportunities.count() * self.trade_bonus

    def apply_valuation_tiebreak(self, score: float, valuation: float) -> float:
        if valuation < self.small_project_valuation:
            return min(score, self.small_project_cap)
        if self.mid_range_valuation <= valuation < self.high_value_valuation:
            return min(100, score + self.mid_range_bonus)
        if valuation >= self.high_value_valuation:
            return min(100, score + self.high_value_bonus)
        return score

    def recalibrate(self, raw: Union[Classification, Dict[str, Any], None],
                    description: Optional[str], permit_type: Optional[str],
                    valuation: float) -> int:
        """
        Calculate the adjusted confidence for a classification.

        Args:
            raw: Classifier output (validated or raw payload)
            description: Permit description
            permit_type: Permit type label
            valuation: Permit valuation

        Returns:
            Recalibrated confidence in [0, 100]
        """
        if not isinstance(raw, Classification):
            raw = Classification.from_raw(raw)

        try:
            valuation = float(valuation or 0)
        except (TypeError, ValueError):
            valuation = 0.0
        if math.isnan(valuation):
            valuation = 0.0

        score = raw.confidence_score or 0

        score = self.apply_signal_floor(score, raw)
        score = self.apply_signal_balance(score, raw)
        score = self.apply_trade_bonus(score, raw)
        score = self.apply_valuation_tiebreak(score, valuation)

        # Hard cap regardless of the other signals
        if self.maintenance_classifier(description or "", permit_type or ""):
            score = min(score, self.maintenance_cap)

        return round_half_up(clamp(score, 0, 100))

    def map_classification(self, raw: Union[Classification, Dict[str, Any], None],
                           description: Optional[str], permit_type: Optional[str],
                           valuation: float) -> Classification:
        """
        Return the classification with its confidence recalibrated.

        The commercial trigger is forced off when the adjusted confidence
        falls below the trigger minimum; otherwise the classifier's value
        is kept.

        Args:
            raw: Classifier output (validated or raw payload)
            description: Permit description
            permit_type: Permit type label
            valuation: Permit valuation

        Returns:
            Recalibrated classification
        """
        if not isinstance(raw, Classification):
            raw = Classification.from_raw(raw)

        adjusted = self.recalibrate(raw, description, permit_type, valuation)
        is_commercial = False if adjusted < self.commercial_trigger_min else raw.is_commercial_trigger

        return replace(raw, confidence_score=adjusted, is_commercial_trigger=is_commercial)

    def recalibrate_records(self, records: Sequence[Record]) -> List[Record]:
        """
        Recalibrate the classification of every classified record.

        Args:
            records: Permit records

        Returns:
            Records with recalibrated classifications (unclassified records unchanged)
        """
        result = []
        recalibrated = 0

        for record in records:
            if record.classification is None:
                result.append(record)
                continue

            classification = self.map_classification(
                record.classification, record.description, record.permit_type, record.valuation
            )
            result.append(replace(record, classification=classification))
            recalibrated += 1

        logger.info(f"Recalibrated {recalibrated} of {len(result)} classifications")
        return result
