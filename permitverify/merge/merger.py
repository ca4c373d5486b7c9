"""
Duplicate resolution for PermitVerify.

Groups permit records that describe the same project and folds each group
into a single multi-signal lead, keeping track of every absorbed record id.
"""

import logging
import math
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
import pandas as pd

from ..blocking.city_blocker import CityBlocker
from ..match.similarity import SimilarityMatcher
from ..models import Record
from ..normalize.address_normalizer import AddressNormalizer

logger = logging.getLogger(__name__)

GROUPING_STRATEGIES = ("greedy", "connected_components")


def _valuation(record: Record) -> float:
    try:
        value = float(record.valuation)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(value) else value


class DuplicateResolver:
    """
    Resolves duplicate permit records into multi-signal leads.

    The default "greedy" grouping is a single pass: every unclaimed record
    collects the later unclaimed records that match it directly. Records
    matched through a group member only (A~B, B~C, A!~C) are not pulled in.
    """

    def __init__(self, config: Optional[Dict] = None,
                 matcher: Optional[SimilarityMatcher] = None,
                 blocker: Optional[CityBlocker] = None):
        """
        Initialize duplicate resolver with configuration.

        Args:
            config: Full configuration dictionary (merge, matching, blocking sections)
            matcher: Pairwise matcher (built from config if omitted)
            blocker: Candidate pair generator (built from config if omitted)
        """
        self.config = config or {}
        self.merge_config = self.config.get("merge", {})
        self.grouping = self.merge_config.get("grouping", "greedy")
        self.multi_signal_bonus = self.merge_config.get("multi_signal_bonus", 15)

        if self.grouping not in GROUPING_STRATEGIES:
            logger.warning(f"Unknown grouping strategy '{self.grouping}', using greedy")
            self.grouping = "greedy"

        if matcher is None:
            address_config = self.config.get("normalization", {}).get("address", {})
            matcher = SimilarityMatcher(self.config.get("matching", {}),
                                        AddressNormalizer(address_config))
        self.matcher = matcher
        self.blocker = blocker or CityBlocker(self.config.get("blocking", {}))

        logger.info(f"Initialized DuplicateResolver ({self.grouping} grouping)")

    def merge_permits(self, primary: Record, secondary: Record) -> Record:
        """
        Merge two duplicate permits into a single lead.

        The permit with the higher valuation is kept as the base (ties keep
        primary); sources are combined and the absorbed ids recorded.

        Args:
            primary: First permit of the pair
            secondary: Permit being folded in

        Returns:
            Merged permit record
        """
        if _valuation(primary) >= _valuation(secondary):
            higher, lower = primary, secondary
        else:
            higher, lower = secondary, primary

        combined_sources = " + ".join(s for s in (higher.data_source, lower.data_source) if s)

        marker = f"MULTI-SIGNAL: Also found in {lower.data_source or 'another source'}"
        combined_description = f"{higher.description} | {marker}" if higher.description else marker

        combined_score = higher.score
        if combined_score is not None:
            combined_score = min(100, combined_score + self.multi_signal_bonus)

        # Extend, never overwrite, the surviving record's merge history
        merged_with = list(higher.merged_with)
        for record_id in lower.all_ids():
            if record_id != higher.id and record_id not in merged_with:
                merged_with.append(record_id)

        return replace(
            higher,
            data_source=combined_sources,
            description=combined_description,
            score=combined_score,
            is_high_quality=True,
            merged_with=merged_with,
        )

    def find_duplicate_pairs(self, records: Sequence[Record],
                             candidates: Optional[Sequence[Tuple[int, int]]] = None) -> Set[Tuple[int, int]]:
        """
        Find every same-city pair judged duplicate by the matcher.

        Args:
            records: Permit records
            candidates: Precomputed candidate pairs (generated by the blocker if omitted)

        Returns:
            Set of (i, j) index pairs with i < j
        """
        if candidates is None:
            candidates = self.blocker.generate_candidate_pairs(records)

        duplicate_pairs = {
            (i, j) for i, j in candidates
            if self.matcher.are_duplicates(records[i], records[j])
        }

        logger.info(f"Found {len(duplicate_pairs)} duplicate pairs among {len(candidates)} candidates")
        return duplicate_pairs

    def _build_merge_groups(self, record_count: int,
                            duplicate_pairs: Set[Tuple[int, int]]) -> List[List[int]]:
        """
        Build merge groups (lists of record indices) from duplicate pairs.

        Args:
            record_count: Number of input records
            duplicate_pairs: (i, j) duplicate index pairs

        Returns:
            Groups ordered by their first member; singletons included
        """
        if self.grouping == "connected_components":
            return self._build_connected_groups(record_count, duplicate_pairs)
        return self._build_greedy_groups(record_count, duplicate_pairs)

    def _build_greedy_groups(self, record_count: int,
                             duplicate_pairs: Set[Tuple[int, int]]) -> List[List[int]]:
        later_matches = defaultdict(list)
        for i, j in sorted(duplicate_pairs):
            later_matches[i].append(j)

        claimed = [False] * record_count
        groups = []

        for i in range(record_count):
            if claimed[i]:
                continue
            claimed[i] = True

            group = [i]
            for j in later_matches[i]:
                if not claimed[j]:
                    claimed[j] = True
                    group.append(j)

            groups.append(group)

        return groups

    def _build_connected_groups(self, record_count: int,
                                duplicate_pairs: Set[Tuple[int, int]]) -> List[List[int]]:
        # Build adjacency list
        adjacency = defaultdict(set)
        for i, j in duplicate_pairs:
            adjacency[i].add(j)
            adjacency[j].add(i)

        # Find connected components
        visited = set()
        groups = []

        for record_idx in range(record_count):
            if record_idx in visited:
                continue

            # BFS to find connected component
            group = []
            queue = [record_idx]

            while queue:
                current = queue.pop(0)
                if current not in visited:
                    visited.add(current)
                    group.append(current)
                    queue.extend(adjacency[current] - visited)

            groups.append(sorted(group))

        return groups

    def resolve_with_log(self, records: Sequence[Record],
                         candidates: Optional[Sequence[Tuple[int, int]]] = None) -> Tuple[List[Record], pd.DataFrame]:
        """
        Deduplicate permits and report every merge performed.

        Args:
            records: Permit records in input order
            candidates: Precomputed candidate pairs for these records

        Returns:
            Tuple of (deduplicated records, merge log DataFrame)
        """
        records = list(records)
        duplicate_pairs = self.find_duplicate_pairs(records, candidates)
        groups = self._build_merge_groups(len(records), duplicate_pairs)

        result = []
        merge_log = []

        for group in groups:
            if len(group) == 1:
                result.append(records[group[0]])
                continue

            merged = records[group[0]]
            for idx in group[1:]:
                merged = self.merge_permits(merged, records[idx])

            result.append(merged)
            merge_log.append({
                "merge_group_id": len(merge_log),
                "surviving_id": merged.id,
                "merged_record_ids": [records[idx].id for idx in group],
                "merge_count": len(group),
                "data_source": merged.data_source,
                "grouping": self.grouping
            })

            logger.debug(f"Merged {len(group)} duplicates for {records[group[0]].address!r} "
                         f"into {merged.id}")

        log_df = pd.DataFrame(merge_log, columns=[
            "merge_group_id", "surviving_id", "merged_record_ids",
            "merge_count", "data_source", "grouping"
        ])

        logger.info(f"Removed {len(records) - len(result)} duplicates "
                    f"({len(records)} -> {len(result)})")

        return result, log_df

    def resolve(self, records: Sequence[Record]) -> List[Record]:
        """
        Deduplicate permits, merging each duplicate group into one record.

        Args:
            records: Permit records in input order

        Returns:
            Deduplicated records; every input id survives exactly once,
            standalone or inside one merged record
        """
        result, _ = self.resolve_with_log(records)
        return result

    def get_deduplication_statistics(self, original: Sequence[Record],
                                     deduped: Sequence[Record]) -> Dict[str, Any]:
        """
        Calculate deduplication statistics.

        Args:
            original: Records before resolution
            deduped: Records after resolution

        Returns:
            Dictionary with deduplication statistics
        """
        original_count = len(original)
        deduped_count = len(deduped)
        duplicates_removed = original_count - deduped_count

        multi_signal_leads = sum(
            1 for r in deduped if "+" in (r.data_source or "") or r.merged_with
        )

        return {
            "original_count": original_count,
            "deduped_count": deduped_count,
            "duplicates_removed": duplicates_removed,
            "multi_signal_leads": multi_signal_leads,
            "deduplication_rate": (duplicates_removed / original_count * 100) if original_count else 0.0
        }


def deduplicate_permits(records: Sequence[Record], config: Optional[Dict] = None) -> List[Record]:
    """
    Convenience function to deduplicate permit records.

    Args:
        records: Permit records
        config: Full configuration dictionary

    Returns:
        Deduplicated records
    """
    resolver = DuplicateResolver(config)
    return resolver.resolve(records)
