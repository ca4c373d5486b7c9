"""
Unit tests for permit ingestion and schema validation.
"""

import json
import pytest
import pandas as pd
import great_expectations as gx
import sys
import tempfile
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from permitverify.exceptions import SchemaValidationError
from permitverify.ingestion.file_loader import (
    load_permit_file, records_from_dataframe, records_to_dataframe
)
from permitverify.ingestion.schema_validator import (
    PermitSchemaValidator, normalize_city, validate_permit_data
)
from permitverify.models import Classification, Enrichment, Record, SignalStrength


class TestFileLoader:
    """Test cases for file loading and record mapping."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

        classification = {
            "confidence_score": 82,
            "signal_strength": "Strong",
            "positive_signals": ["new construction"],
            "negative_signals": [],
            "trade_opportunities": {"security_integrator": True, "signage": False, "low_voltage_it": True},
            "is_commercial_trigger": True,
            "project_type": "New Construction"
        }

        self.test_data = pd.DataFrame({
            "id": ["DAL-001", "DAL-002"],
            "address": ["123 Main Street Suite 400", None],
            "city": ["Dallas", "Plano"],
            "valuation": [250000.0, None],
            "applied_date": ["2024-05-01", None],
            "data_source": ["Dallas Open Data", "Plano Permits"],
            "description": ["New office buildout", None],
            "permit_type": ["Commercial Remodel", "Commercial New"],
            "latitude": [32.7767, None],
            "longitude": [-96.7970, None],
            "classification": [json.dumps(classification), None],
            "enrichment_verified": [True, None]
        })

    def test_load_csv(self):
        """Test loading a CSV file."""
        path = Path(self.temp_dir) / "permits.csv"
        self.test_data.to_csv(path, index=False)

        df = load_permit_file(str(path))

        assert len(df) == 2
        assert df["id"].tolist() == ["DAL-001", "DAL-002"]

    def test_load_parquet(self):
        """Test loading a Parquet file."""
        path = Path(self.temp_dir) / "permits.parquet"
        self.test_data.to_parquet(path, index=False)

        df = load_permit_file(path)

        assert len(df) == 2
        assert "classification" in df.columns

    def test_load_jsonl(self):
        """Test loading a JSON-lines file."""
        path = Path(self.temp_dir) / "permits.jsonl"
        self.test_data.to_json(path, orient="records", lines=True)

        df = load_permit_file(path)

        assert len(df) == 2
        assert df["city"].tolist() == ["Dallas", "Plano"]

    def test_unsupported_format(self):
        """Test that unknown file types are rejected."""
        with pytest.raises(ValueError):
            load_permit_file(Path(self.temp_dir) / "permits.xlsx")

    def test_records_from_dataframe(self):
        """Test mapping rows to records."""
        records = records_from_dataframe(self.test_data)

        first, second = records
        assert first.id == "DAL-001"
        assert first.coordinates == (32.7767, -96.7970)
        assert first.valuation == 250000.0
        assert first.classification.confidence_score == 82
        assert first.classification.signal_strength == SignalStrength.STRONG
        assert first.classification.trade_opportunities.count() == 2
        assert first.enrichment.verified

        assert second.address == ""
        assert second.valuation == 0.0
        assert second.applied_date is None
        assert second.coordinates is None
        assert second.classification is None
        assert second.enrichment is None
        assert second.merged_with == []

    def test_records_from_csv_round_trip(self):
        """Test that CSV-loaded rows map to the same records."""
        path = Path(self.temp_dir) / "permits.csv"
        self.test_data.to_csv(path, index=False)

        records = records_from_dataframe(load_permit_file(path))

        assert records[0].classification.is_commercial_trigger
        assert records[0].enrichment.verified
        assert records[1].enrichment is None

    def test_bad_classification_payload(self):
        """Test that unreadable classification payloads are ignored."""
        df = pd.DataFrame({"id": ["1"], "classification": ["{not json"]})
        records = records_from_dataframe(df)

        assert records[0].classification is None

    def test_records_to_dataframe(self):
        """Test flattening records for export."""
        records = [
            Record(id="1", address="123 Main St", city="Dallas", valuation=1000,
                   coordinates=(32.1, -96.1),
                   classification=Classification(confidence_score=40, signal_strength=SignalStrength.WEAK),
                   enrichment=Enrichment(verified=True), score=55, merged_with=["2", "3"]),
            Record(id="4", city="Plano"),
        ]

        df = records_to_dataframe(records)

        assert len(df) == 2
        assert df.loc[0, "merged_with"] == "2;3"
        assert df.loc[0, "signal_strength"] == "Weak"
        assert df.loc[0, "latitude"] == 32.1
        assert df.loc[1, "merged_with"] == ""

        restored = records_from_dataframe(df)
        assert restored[0].merged_with == ["2", "3"]
        assert restored[0].classification.confidence_score == 40
        assert restored[0].score == 55

    def teardown_method(self):
        """Cleanup test fixtures."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestPermitSchemaValidator:
    """Test cases for permit schema validation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.config = {
            "required_columns": ["id", "address", "city", "valuation", "applied_date", "data_source"],
            "drop_unknown_cities": False
        }
        self.validator = PermitSchemaValidator(self.config)

        self.test_data = pd.DataFrame({
            "id": ["1", "2", "2", None, "5"],
            "address": ["1 Main St", "2 Elm St", "2 Elm St", "4 Oak Ave", "5 Pine Ln"],
            "city": ["dallas", "Ft. Worth", "Fort Worth", "Plano", "Austin"],
            "valuation": [1000, -50, "abc", 300, None],
            "applied_date": ["2024-01-01"] * 5,
            "data_source": ["S1", "S2", "S3", "S4", "S5"]
        })

    def test_normalize_city(self):
        """Test city canonicalization."""
        assert normalize_city("dallas") == "Dallas"
        assert normalize_city(" DALLAS TX ") == "Dallas"
        assert normalize_city("Ft. Worth") == "Fort Worth"
        assert normalize_city("FW") == "Fort Worth"
        assert normalize_city("fort  worth") == "Fort Worth"
        assert normalize_city("Austin") == "Austin"
        assert normalize_city(None) == ""

    def test_missing_required_columns(self):
        """Test that missing columns fail fast."""
        df = self.test_data.drop(columns=["city"])

        with pytest.raises(SchemaValidationError):
            self.validator.validate(df)

    def test_validate_and_clean(self):
        """Test row-level cleaning."""
        cleaned_df, summary = self.validator.validate(self.test_data)

        assert cleaned_df["id"].tolist() == ["1", "2", "5"]
        assert cleaned_df["city"].tolist() == ["Dallas", "Fort Worth", "Austin"]
        assert cleaned_df["valuation"].tolist() == [1000.0, 0.0, 0.0]

        assert not summary["success"]
        assert summary["failed_expectations"] > 0
        assert summary["total_expectations"] == summary["successful_expectations"] + summary["failed_expectations"]
        failed_columns = {d["column"] for d in summary["failed_expectations_details"]}
        assert {"id", "valuation", "city"} <= failed_columns

    def test_expectation_suite(self):
        """Test that the suite is a Great Expectations suite."""
        suite = self.validator.suite

        assert isinstance(suite, gx.ExpectationSuite)
        assert suite.name == "permit_data_validation"
        assert len(suite.expectations) == len(self.config["required_columns"]) + 6

    def test_summary_built_from_validation_result(self):
        """Test that the summary reflects the Great Expectations result."""
        prepared = self.validator.prepare_data(self.test_data)
        validation_result = self.validator.validate_data(prepared)

        assert not validation_result.success
        failed_types = {
            r.expectation_config.type for r in validation_result.results if not r.success
        }
        assert "expect_column_values_to_be_unique" in failed_types
        assert "expect_column_values_to_be_in_set" in failed_types

        summary = self.validator.get_validation_summary(validation_result)
        assert summary["total_expectations"] == len(validation_result.results)

        between = next(d for d in summary["failed_expectations_details"]
                       if d["expectation_type"] == "expect_column_values_to_be_between")
        assert between["column"] == "valuation"
        assert between["unexpected_count"] == 1

    def test_drop_unknown_cities(self):
        """Test dropping rows outside the known cities."""
        validator = PermitSchemaValidator({"drop_unknown_cities": True})
        cleaned_df, _ = validator.validate(self.test_data)

        assert "Austin" not in cleaned_df["city"].tolist()
        assert cleaned_df["id"].tolist() == ["1", "2"]

    def test_clean_data_passes(self):
        """Test that valid data passes every expectation."""
        df = self.test_data.iloc[[0]].copy()

        cleaned_df, summary = validate_permit_data(df, self.config)

        assert summary["success"]
        assert summary["success_rate"] == 1.0
        assert len(cleaned_df) == 1


if __name__ == "__main__":
    pytest.main([__file__])
