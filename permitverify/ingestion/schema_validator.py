"""
Schema validation using Great Expectations for PermitVerify.

Validates permit batches against the common permit schema and basic data
quality rules. Fails fast when required columns are missing; row-level
problems are cleaned and reported.
"""

import logging
import re
from typing import Any, Dict, Iterable, Optional, Tuple
import pandas as pd
import great_expectations as gx
from great_expectations.core.expectation_validation_result import (
    ExpectationSuiteValidationResult, ExpectationValidationResult
)

from ..exceptions import SchemaValidationError
from ..models import KNOWN_CITIES

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_COLUMNS = ["id", "address", "city", "valuation", "applied_date", "data_source"]

CITY_ALIASES = {
    "fw": "Fort Worth",
    "ft worth": "Fort Worth",
    "ft. worth": "Fort Worth",
}


def normalize_city(city: Any, known_cities: Optional[Iterable[str]] = None) -> str:
    """
    Canonicalize a city name against the known service-area cities.

    Args:
        city: Raw city value
        known_cities: Canonical city names (defaults to KNOWN_CITIES)

    Returns:
        Canonical city name, or the trimmed input when no city matches
    """
    if not isinstance(city, str):
        return ""

    cleaned = re.sub(r"\s+", " ", city.strip())
    lowered = cleaned.lower()

    if lowered in CITY_ALIASES:
        return CITY_ALIASES[lowered]

    for known in known_cities or KNOWN_CITIES:
        if known.lower() in lowered:
            return known

    return cleaned


class PermitSchemaValidator:
    """
    Validates permit data schema and quality using Great Expectations.

    Each batch is validated against an expectation suite in an ephemeral
    data context; failed expectations drive the row-level cleaning.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize validator with configuration.

        Args:
            config: Schema section of the configuration
        """
        self.config = config or {}
        self.required_columns = self.config.get("required_columns", DEFAULT_REQUIRED_COLUMNS)
        self.known_cities = self.config.get("known_cities", KNOWN_CITIES)
        self.drop_unknown_cities = self.config.get("drop_unknown_cities", False)

        # Initialize Great Expectations context
        self.context = gx.get_context(mode="ephemeral")
        self.data_source_name = "permit_data"

        self._setup_data_source()
        self.suite = self.context.suites.add(self.create_expectations())

        logger.info("Initialized PermitSchemaValidator")

    def _setup_data_source(self):
        """Set up the pandas data source and whole-dataframe batch definition."""
        data_source = self.context.data_sources.add_pandas(name=self.data_source_name)
        data_asset = data_source.add_dataframe_asset(name="permit_batch")
        self.batch_definition = data_asset.add_batch_definition_whole_dataframe("permit_batch_definition")

    def create_expectations(self) -> gx.ExpectationSuite:
        """
        Create expectation suite for permit data validation.

        Returns:
            ExpectationSuite with validation rules
        """
        suite_name = "permit_data_validation"
        suite = gx.ExpectationSuite(name=suite_name)

        for column in self.required_columns:
            suite.add_expectation(gx.expectations.ExpectColumnToExist(column=column))

        suite.add_expectation(gx.expectations.ExpectTableRowCountToBeBetween(min_value=1))

        # Permit ids must be present and unique
        suite.add_expectation(gx.expectations.ExpectColumnValuesToNotBeNull(column="id"))
        suite.add_expectation(gx.expectations.ExpectColumnValuesToBeUnique(column="id"))

        suite.add_expectation(gx.expectations.ExpectColumnValuesToNotBeNull(column="valuation"))
        suite.add_expectation(gx.expectations.ExpectColumnValuesToBeBetween(column="valuation", min_value=0))

        suite.add_expectation(
            gx.expectations.ExpectColumnValuesToBeInSet(column="city", value_set=list(self.known_cities))
        )

        logger.info(f"Created expectation suite '{suite_name}' with {len(suite.expectations)} expectations")
        return suite

    def check_required_columns(self, df: pd.DataFrame):
        """Raise SchemaValidationError if any required column is missing."""
        missing = [col for col in self.required_columns if col not in df.columns]
        if missing:
            logger.error(f"Missing required columns: {missing}")
            raise SchemaValidationError(f"Missing required columns: {', '.join(missing)}")

    def prepare_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Coerce column types ahead of validation.

        Args:
            df: Raw permit DataFrame

        Returns:
            Copy with ids as strings, numeric valuations and canonical cities
        """
        prepared = df.copy()

        prepared["id"] = prepared["id"].where(prepared["id"].isnull(), prepared["id"].astype(str).str.strip())
        prepared.loc[prepared["id"] == "", "id"] = None

        prepared["valuation"] = pd.to_numeric(prepared["valuation"], errors="coerce")
        prepared["city"] = prepared["city"].apply(lambda c: normalize_city(c, self.known_cities))

        return prepared

    def validate_data(self, df: pd.DataFrame) -> ExpectationSuiteValidationResult:
        """
        Validate a prepared DataFrame against the expectation suite.

        Args:
            df: DataFrame returned by prepare_data

        Returns:
            ExpectationSuiteValidationResult with one result per expectation
        """
        batch = self.batch_definition.get_batch(batch_parameters={"dataframe": df})
        validation_result = batch.validate(self.suite)

        for expectation_result in validation_result.results:
            if not expectation_result.success:
                expectation_type, column = _describe(expectation_result)
                logger.warning(f"Failed expectation: {expectation_type} for column: {column} "
                               f"({_unexpected_count(expectation_result)} rows)")

        return validation_result

    def get_validation_summary(self, validation_result: ExpectationSuiteValidationResult) -> Dict[str, Any]:
        """
        Extract validation summary from a suite validation result.

        Args:
            validation_result: Result from validate_data

        Returns:
            Dictionary with validation summary
        """
        summary = {
            "success": bool(validation_result.success),
            "total_expectations": len(validation_result.results),
            "successful_expectations": 0,
            "failed_expectations": 0,
            "failed_expectations_details": []
        }

        for expectation_result in validation_result.results:
            if expectation_result.success:
                summary["successful_expectations"] += 1
                continue

            summary["failed_expectations"] += 1
            expectation_type, column = _describe(expectation_result)
            summary["failed_expectations_details"].append({
                "expectation_type": expectation_type,
                "column": column,
                "unexpected_count": _unexpected_count(expectation_result),
                "result": expectation_result.result
            })

        if summary["total_expectations"] > 0:
            summary["success_rate"] = summary["successful_expectations"] / summary["total_expectations"]
        else:
            summary["success_rate"] = 0.0

        logger.info(f"Validation summary: {summary['successful_expectations']}/{summary['total_expectations']} passed "
                    f"({summary['success_rate']:.2%} success rate)")

        return summary

    def clean_invalid_data(self, df: pd.DataFrame,
                           validation_result: ExpectationSuiteValidationResult) -> pd.DataFrame:
        """
        Clean invalid data based on validation results.

        Args:
            df: Prepared DataFrame
            validation_result: Result from validate_data

        Returns:
            Cleaned DataFrame
        """
        original_rows = len(df)
        cleaned_df = df.copy()

        for expectation_result in validation_result.results:
            if expectation_result.success:
                continue

            expectation_type, column = _describe(expectation_result)

            if expectation_type == "expect_column_values_to_not_be_null" and column == "id":
                null_mask = cleaned_df["id"].isnull()
                cleaned_df = cleaned_df[~null_mask]
                logger.info(f"Removed {null_mask.sum()} rows without an id")

            elif expectation_type == "expect_column_values_to_be_unique" and column == "id":
                # Keep first occurrence
                duplicate_mask = cleaned_df["id"].duplicated(keep="first") & cleaned_df["id"].notnull()
                cleaned_df = cleaned_df[~duplicate_mask]
                logger.info(f"Removed {duplicate_mask.sum()} duplicate permit ids")

            elif column == "valuation":
                cleaned_df = cleaned_df.assign(valuation=cleaned_df["valuation"].fillna(0.0).clip(lower=0.0))
                logger.info("Coerced missing or negative valuations to 0")

            elif expectation_type == "expect_column_values_to_be_in_set" and column == "city":
                if self.drop_unknown_cities:
                    unknown_mask = ~cleaned_df["city"].isin(self.known_cities)
                    cleaned_df = cleaned_df[~unknown_mask]
                    logger.info(f"Removed {unknown_mask.sum()} rows outside the known cities")

        cleaned_df = cleaned_df.reset_index(drop=True)

        removed_rows = original_rows - len(cleaned_df)
        if original_rows:
            logger.info(f"Data cleaning completed: removed {removed_rows} invalid rows "
                        f"({removed_rows / original_rows:.2%} of data)")

        return cleaned_df

    def validate(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        """
        Validate and clean a permit batch.

        Args:
            df: Raw permit DataFrame

        Returns:
            Tuple of (cleaned_df, validation_summary)
        """
        self.check_required_columns(df)

        prepared = self.prepare_data(df).reset_index(drop=True)
        validation_result = self.validate_data(prepared)
        summary = self.get_validation_summary(validation_result)

        if summary["success"]:
            logger.info("All validation expectations passed")
            return prepared, summary

        logger.warning("Validation failed, cleaning invalid data")
        return self.clean_invalid_data(prepared, validation_result), summary


def _describe(expectation_result: ExpectationValidationResult) -> Tuple[str, str]:
    config = expectation_result.expectation_config
    return config.type, config.kwargs.get("column", "N/A")


def _unexpected_count(expectation_result: ExpectationValidationResult) -> int:
    return int((expectation_result.result or {}).get("unexpected_count", 0) or 0)


def validate_permit_data(df: pd.DataFrame,
                         config: Optional[Dict[str, Any]] = None) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Convenience function to validate and clean permit data.

    Args:
        df: Permit DataFrame to validate
        config: Schema configuration

    Returns:
        Tuple of (cleaned_df, validation_summary)
    """
    validator = PermitSchemaValidator(config)
    return validator.validate(df)
