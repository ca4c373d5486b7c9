"""
Address normalization for PermitVerify.

Canonicalizes free-text permit addresses so that the same street address
reported by different sources compares equal: unit designators are dropped,
street types abbreviated and directionals removed.
"""

import re
import logging
from typing import Dict, List, Optional
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_STREET_TYPES = {
    "street": "st", "avenue": "ave", "boulevard": "blvd", "road": "rd",
    "drive": "dr", "lane": "ln", "parkway": "pkwy", "court": "ct",
    "place": "pl", "circle": "cir"
}

DEFAULT_UNIT_DESIGNATORS = ["suite", "ste", "unit", "apt"]


class AddressNormalizer:
    """
    Normalizes permit addresses for fuzzy matching.

    normalize() is pure and idempotent: normalize(normalize(x)) == normalize(x).
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize address normalizer with configuration.

        Args:
            config: Address normalization section of the configuration
        """
        self.config = config or {}
        self.street_types = {
            k.lower(): v.lower()
            for k, v in self.config.get("street_types", DEFAULT_STREET_TYPES).items()
        }
        self.unit_designators: List[str] = [
            u.lower() for u in self.config.get("unit_designators", DEFAULT_UNIT_DESIGNATORS)
        ]

        # Compile regex patterns for efficiency
        self.punctuation_pattern = re.compile(r"[^\w\s#]")
        # "suite 400", "ste400", "apt #4b", "#400"
        if self.unit_designators:
            designators = "|".join(map(re.escape, self.unit_designators))
            self.unit_pattern = re.compile(
                r"(?:\b(?:" + designators + r")(?=\s|\d|#)|#)\s*#?\s*\w+"
            )
        else:
            self.unit_pattern = re.compile(r"#\s*#?\s*\w+")
        self.street_type_pattern = None
        if self.street_types:
            self.street_type_pattern = re.compile(
                r"\b(" + "|".join(map(re.escape, self.street_types)) + r")\b"
            )
        self.direction_pattern = re.compile(r"\b[nsew]\b")
        self.whitespace_pattern = re.compile(r"\s+")

        logger.info("Initialized AddressNormalizer")

    def normalize(self, address: Optional[str]) -> str:
        """
        Normalize a single address.

        Args:
            address: Raw address string

        Returns:
            Normalized address ("" for missing input)
        """
        if not isinstance(address, str) or not address:
            return ""

        text = address.lower().strip()

        # Punctuation goes first so "s.t.e. 4" and "apt-4" reach the unit rule
        text = self.punctuation_pattern.sub("", text)
        text = self.unit_pattern.sub(" ", text)
        if self.street_type_pattern is not None:
            text = self.street_type_pattern.sub(lambda m: self.street_types[m.group(1)], text)
        text = self.direction_pattern.sub(" ", text)
        text = text.replace("#", " ")
        text = self.whitespace_pattern.sub(" ", text).strip()

        return text

    def normalize_dataframe(self, df: pd.DataFrame,
                            address_column: str = "address") -> pd.DataFrame:
        """
        Normalize addresses in a DataFrame.

        Args:
            df: Input DataFrame
            address_column: Column with raw addresses

        Returns:
            DataFrame with an added "<address_column>_norm" column
        """
        result_df = df.copy()

        if address_column not in df.columns:
            logger.warning(f"Column '{address_column}' not found, skipping address normalization")
            return result_df

        result_df[f"{address_column}_norm"] = df[address_column].apply(self.normalize)

        logger.info(f"Normalized addresses for {len(result_df)} records")
        return result_df


def normalize_address(address: str, config: Optional[Dict] = None) -> str:
    """
    Convenience function to normalize a single address.

    Args:
        address: Raw address string
        config: Address normalization configuration

    Returns:
        Normalized address
    """
    return AddressNormalizer(config).normalize(address)
