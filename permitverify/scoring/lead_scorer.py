"""
Lead scoring for PermitVerify.

Scores permits 0-100 from valuation, classification confidence, recency
and registry verification.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import numpy as np
import pandas as pd

from ..models import Record
from ..utils import clamp, round_half_up

logger = logging.getLogger(__name__)

RECENCY_THRESHOLD_DAYS = 90
VALUATION_CAP = 1000000


class LeadScorer:
    """
    Composite lead scorer.

    Each component is clamped to its own weight before summing, and the
    total is clamped to [0, 100] and rounded.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize lead scorer with configuration.

        Args:
            config: Lead scoring section of the configuration
        """
        self.config = config or {}
        self.weights = dict(self.config.get("weights", {}))

        # Set default weights
        self.default_weights = {
            "valuation": 40,
            "confidence": 40,
            "recency": 15,
            "enrichment": 5
        }

        for key, value in self.default_weights.items():
            if key not in self.weights:
                self.weights[key] = value

        self.valuation_cap = self.config.get("valuation_cap", VALUATION_CAP)
        if not self.valuation_cap or self.valuation_cap <= 0:
            logger.warning(f"Invalid valuation_cap {self.valuation_cap}, using {VALUATION_CAP}")
            self.valuation_cap = VALUATION_CAP

        self.recency_threshold_days = self.config.get("recency_threshold_days", RECENCY_THRESHOLD_DAYS)
        if not self.recency_threshold_days or self.recency_threshold_days <= 0:
            logger.warning(f"Invalid recency_threshold_days {self.recency_threshold_days}, "
                           f"using {RECENCY_THRESHOLD_DAYS}")
            self.recency_threshold_days = RECENCY_THRESHOLD_DAYS

        logger.info("Initialized LeadScorer")

    def days_since(self, applied_date: Any, now: Optional[datetime] = None) -> int:
        """
        Whole days elapsed since a permit was applied for.

        Args:
            applied_date: Date string, date or datetime
            now: Reference time (defaults to the current time)

        Returns:
            Days elapsed; twice the recency threshold for unparseable dates
        """
        stale = self.recency_threshold_days * 2
        if applied_date is None or applied_date == "":
            return stale

        try:
            applied = pd.to_datetime(applied_date, errors="coerce")
        except (TypeError, ValueError, OverflowError):
            applied = pd.NaT

        if not isinstance(applied, pd.Timestamp) or pd.isna(applied):
            logger.debug(f"Unparseable applied date {applied_date!r}, treating as stale")
            return stale

        if applied.tzinfo is not None:
            applied = applied.tz_convert("UTC").tz_localize(None)

        reference = pd.Timestamp(now or datetime.now())
        if reference.tzinfo is not None:
            reference = reference.tz_convert("UTC").tz_localize(None)

        return int(math.floor((reference - applied).total_seconds() / 86400))

    def score_components(self, record: Record, now: Optional[datetime] = None) -> Dict[str, float]:
        """
        Calculate each scoring component for a record.

        Args:
            record: Permit record
            now: Reference time for recency

        Returns:
            Dictionary with the clamped valuation, confidence, recency and
            enrichment components
        """
        try:
            valuation = float(record.valuation or 0)
        except (TypeError, ValueError):
            valuation = 0.0
        if math.isnan(valuation):
            valuation = 0.0

        confidence = record.classification.confidence_score if record.classification else 0
        confidence = confidence or 0

        w_valuation = self.weights["valuation"]
        w_confidence = self.weights["confidence"]
        w_recency = self.weights["recency"]

        valuation_score = clamp(min(valuation, self.valuation_cap) / self.valuation_cap * w_valuation,
                                0, w_valuation)
        confidence_score = clamp(min(confidence, 100) / 100 * w_confidence, 0, w_confidence)

        days = self.days_since(record.applied_date, now)
        recency_score = clamp(
            (self.recency_threshold_days - days) / self.recency_threshold_days * w_recency,
            0, w_recency
        )

        verified = record.enrichment is not None and record.enrichment.verified is True
        enrichment_score = self.weights["enrichment"] if verified else 0

        return {
            "valuation": valuation_score,
            "confidence": confidence_score,
            "recency": recency_score,
            "enrichment": enrichment_score
        }

    def score(self, record: Record, now: Optional[datetime] = None) -> int:
        """
        Compute a composite lead score.

        Args:
            record: Permit record
            now: Reference time for recency

        Returns:
            Lead score in [0, 100]
        """
        components = self.score_components(record, now)
        return round_half_up(clamp(sum(components.values()), 0, 100))

    def score_records(self, records: Sequence[Record], now: Optional[datetime] = None) -> List[Record]:
        """
        Score every record.

        Args:
            records: Permit records
            now: Reference time for recency

        Returns:
            Records with their score set
        """
        now = now or datetime.now()
        scored = [replace(record, score=self.score(record, now)) for record in records]

        logger.info(f"Scored {len(scored)} permits")
        return scored

    def get_score_statistics(self, records: Sequence[Record]) -> Dict[str, Any]:
        """
        Calculate statistics for a scored batch.

        Args:
            records: Scored permit records

        Returns:
            Dictionary with score statistics
        """
        scores = pd.Series([r.score for r in records if r.score is not None], dtype=float)

        if scores.empty:
            return {"scored_count": 0}

        counts, _ = np.histogram(scores, bins=[0, 20, 40, 60, 80, 101])

        return {
            "scored_count": int(len(scores)),
            "mean_score": float(scores.mean()),
            "median_score": float(scores.median()),
            "std_score": float(scores.std()) if len(scores) > 1 else 0.0,
            "min_score": float(scores.min()),
            "max_score": float(scores.max()),
            "score_distribution": {
                "0-20": int(counts[0]),
                "20-40": int(counts[1]),
                "40-60": int(counts[2]),
                "60-80": int(counts[3]),
                "80-100": int(counts[4])
            }
        }


def score_permits(records: Sequence[Record], config: Optional[Dict] = None,
                  now: Optional[datetime] = None) -> List[Record]:
    """
    Convenience function to score permit records.

    Args:
        records: Permit records
        config: Lead scoring configuration
        now: Reference time for recency

    Returns:
        Scored records
    """
    scorer = LeadScorer(config)
    return scorer.score_records(records, now)
