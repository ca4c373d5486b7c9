"""
City blocking for PermitVerify.

Permits are only ever compared with permits from the same city, so the
city is used as a block key to cut the pairwise comparison space before
similarity matching.
"""

import logging
from collections import defaultdict
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import Record

logger = logging.getLogger(__name__)


class CityBlocker:
    """
    Builds same-city candidate pairs for duplicate detection.

    Pairs are returned as (i, j) index tuples into the input sequence with
    i < j, sorted so that downstream grouping stays deterministic.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize city blocker with configuration.

        Args:
            config: Blocking section of the configuration
        """
        self.config = config or {}
        self.max_block_size = self.config.get("max_block_size", 5000)

        logger.info("Initialized CityBlocker")

    def build_blocks(self, records: Sequence[Record]) -> Dict[str, List[int]]:
        """
        Group record indices by city.

        Args:
            records: Permit records

        Returns:
            Mapping of city to the indices of its records, in input order
        """
        blocks: Dict[str, List[int]] = defaultdict(list)
        for idx, record in enumerate(records):
            blocks[record.city or ""].append(idx)
        return dict(blocks)

    def generate_candidate_pairs(self, records: Sequence[Record]) -> List[Tuple[int, int]]:
        """
        Generate candidate pairs within each city block.

        Args:
            records: Permit records

        Returns:
            Sorted list of (i, j) index pairs with i < j
        """
        candidates = []

        for city, indices in self.build_blocks(records).items():
            if len(indices) > self.max_block_size:
                logger.warning(f"Block '{city}' is large ({len(indices)} records), "
                               f"comparing {len(indices) * (len(indices) - 1) // 2:,} pairs")

            candidates.extend(combinations(indices, 2))

        candidates.sort()

        logger.info(f"Generated {len(candidates)} same-city candidate pairs")
        return candidates

    def get_blocking_statistics(self, records: Sequence[Record],
                                candidates: Sequence[Tuple[int, int]]) -> Dict[str, Any]:
        """
        Calculate blocking efficiency statistics.

        Args:
            records: Permit records
            candidates: Candidate pairs generated for the records

        Returns:
            Dictionary with blocking statistics
        """
        total_records = len(records)
        total_possible_pairs = total_records * (total_records - 1) // 2
        generated_candidates = len(candidates)

        reduction_ratio = 1 - (generated_candidates / total_possible_pairs) if total_possible_pairs > 0 else 0

        block_sizes = {city: len(indices) for city, indices in self.build_blocks(records).items()}

        statistics = {
            "total_records": total_records,
            "total_possible_pairs": total_possible_pairs,
            "generated_candidates": generated_candidates,
            "reduction_ratio": reduction_ratio,
            "reduction_percentage": reduction_ratio * 100,
            "block_sizes": block_sizes,
            "max_block_size": max(block_sizes.values()) if block_sizes else 0
        }

        logger.info(f"Blocking statistics: {generated_candidates:,} candidates from "
                    f"{total_possible_pairs:,} possible pairs "
                    f"({statistics['reduction_percentage']:.2f}% reduction)")

        return statistics
