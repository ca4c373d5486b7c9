"""
Main pipeline orchestrator for PermitVerify.

Coordinates the batch lead-resolution pipeline from data ingestion through
validation, duplicate resolution, confidence recalibration, lead scoring
and reporting.
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import pandas as pd

from ..exceptions import ConfigurationError
from ..ingestion.file_loader import load_permit_file, records_from_dataframe, records_to_dataframe
from ..ingestion.schema_validator import validate_permit_data
from ..merge.merger import DuplicateResolver
from ..models import Record
from ..normalize.config import DEFAULT_CONFIG_PATH, load_config, validate_config
from ..scoring.lead_scorer import LeadScorer
from ..scoring.recalibrator import ConfidenceRecalibrator

logger = logging.getLogger(__name__)


class PermitVerifyPipeline:
    """
    Main pipeline orchestrator for PermitVerify.

    Runs every stage in order with stage timing; a failing stage is logged
    and its exception re-raised.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = config_path
        self.config = self._load_config()

        # Initialize components
        self.resolver = DuplicateResolver(self.config)
        scoring_config = self.config.get("scoring", {})
        self.recalibrator = ConfidenceRecalibrator(scoring_config.get("recalibration", {}))
        self.scorer = LeadScorer(scoring_config.get("lead", {}))

        # Pipeline state
        self.pipeline_start_time = None
        self.stage_times = {}
        self.stage_durations = {}

        logger.info("Initialized PermitVerify pipeline")

    def _load_config(self) -> Dict:
        """Load and validate configuration from YAML file."""
        config = load_config(self.config_path)
        if not validate_config(config):
            raise ConfigurationError(f"Invalid configuration: {self.config_path}")
        return config

    def _start_stage_timer(self, stage_name: str):
        """Start timing for a pipeline stage."""
        self.stage_times[stage_name] = time.time()
        logger.info(f"Starting stage: {stage_name}")

    def _end_stage_timer(self, stage_name: str):
        """End timing for a pipeline stage."""
        if stage_name in self.stage_times:
            duration = time.time() - self.stage_times[stage_name]
            self.stage_durations[stage_name] = duration
            logger.info(f"Completed stage: {stage_name} in {duration:.2f} seconds")

    def ingest_data(self, input_path: str) -> pd.DataFrame:
        """
        Ingest permit data from a local file.

        Args:
            input_path: Path to input data

        Returns:
            DataFrame with ingested data
        """
        self._start_stage_timer("data_ingestion")

        try:
            df = load_permit_file(input_path)
            logger.info(f"Ingested {len(df)} records from {input_path}")

            self._end_stage_timer("data_ingestion")
            return df

        except Exception as e:
            logger.error(f"Data ingestion failed: {e}")
            raise

    def validate_data(self, df: pd.DataFrame) -> Tuple[List[Record], Dict[str, Any]]:
        """
        Validate permit data against schema and build records.

        Args:
            df: Input DataFrame

        Returns:
            Tuple of (validated records, validation summary)
        """
        self._start_stage_timer("data_validation")

        try:
            validated_df, validation_summary = validate_permit_data(df, self.config.get("schema", {}))
            records = records_from_dataframe(validated_df)

            logger.info(f"Data validation completed: {validation_summary.get('success_rate', 0):.2%} success rate")

            self._end_stage_timer("data_validation")
            return records, validation_summary

        except Exception as e:
            logger.error(f"Data validation failed: {e}")
            raise

    def resolve_duplicates(self, records: List[Record]) -> Tuple[List[Record], pd.DataFrame, Dict[str, Any]]:
        """
        Merge duplicate permits into multi-signal leads.

        Args:
            records: Validated permit records

        Returns:
            Tuple of (deduplicated records, merge log DataFrame, blocking statistics)
        """
        self._start_stage_timer("duplicate_resolution")

        try:
            candidates = self.resolver.blocker.generate_candidate_pairs(records)
            blocking_stats = self.resolver.blocker.get_blocking_statistics(records, candidates)

            deduped, merge_log_df = self.resolver.resolve_with_log(records, candidates)

            logger.info(f"Duplicate resolution completed: {len(records)} -> {len(deduped)} records")

            self._end_stage_timer("duplicate_resolution")
            return deduped, merge_log_df, blocking_stats

        except Exception as e:
            logger.error(f"Duplicate resolution failed: {e}")
            raise

    def recalibrate_confidence(self, records: List[Record]) -> List[Record]:
        """
        Recalibrate classifier confidence for every classified record.

        Args:
            records: Deduplicated records

        Returns:
            Records with recalibrated classifications
        """
        self._start_stage_timer("confidence_recalibration")

        try:
            recalibrated = self.recalibrator.recalibrate_records(records)

            self._end_stage_timer("confidence_recalibration")
            return recalibrated

        except Exception as e:
            logger.error(f"Confidence recalibration failed: {e}")
            raise

    def score_leads(self, records: List[Record], now: Optional[datetime] = None) -> List[Record]:
        """
        Compute lead scores.

        Args:
            records: Recalibrated records
            now: Reference time for recency

        Returns:
            Scored records
        """
        self._start_stage_timer("lead_scoring")

        try:
            scored = self.scorer.score_records(records, now)

            self._end_stage_timer("lead_scoring")
            return scored

        except Exception as e:
            logger.error(f"Lead scoring failed: {e}")
            raise

    def generate_report(self, original_count: int, validated: List[Record], scored: List[Record],
                        blocking_stats: Dict[str, Any],
                        validation_summary: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate pipeline performance report.

        Args:
            original_count: Number of ingested rows
            validated: Records after validation
            scored: Final scored records
            blocking_stats: Blocking statistics
            validation_summary: Validation summary

        Returns:
            Performance report dictionary
        """
        self._start_stage_timer("report_generation")

        try:
            dedup_stats = self.resolver.get_deduplication_statistics(validated, scored)
            score_stats = self.scorer.get_score_statistics(scored)

            report = {
                "pipeline_execution": {
                    "start_time": self.pipeline_start_time,
                    "end_time": datetime.now(),
                    "stage_times": self.stage_durations,
                    "total_duration": time.time() - self.pipeline_start_time if self.pipeline_start_time else 0
                },
                "data_processing": {
                    "original_records": original_count,
                    "validated_records": len(validated),
                    "final_records": len(scored),
                    "duplicate_reduction": dedup_stats["duplicates_removed"],
                    "duplicate_reduction_percentage": dedup_stats["deduplication_rate"],
                    "validation_success_rate": validation_summary.get("success_rate", 0.0)
                },
                "deduplication_statistics": dedup_stats,
                "blocking_statistics": blocking_stats,
                "score_statistics": score_stats
            }

            logger.info("Pipeline report generated")

            self._end_stage_timer("report_generation")
            return report

        except Exception as e:
            logger.error(f"Report generation failed: {e}")
            raise

    def run_pipeline(self, input_path: str, output_path: Optional[str] = None,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run the complete PermitVerify pipeline.

        Args:
            input_path: Path to input data
            output_path: Path for output files (optional)
            now: Reference time for recency scoring (defaults to the current time)

        Returns:
            Pipeline execution report
        """
        self.pipeline_start_time = time.time()
        logger.info(f"Starting PermitVerify pipeline for {input_path}")

        try:
            # 1. Data Ingestion
            raw_df = self.ingest_data(input_path)
            original_count = len(raw_df)

            # 2. Data Validation
            records, validation_summary = self.validate_data(raw_df)

            # 3. Duplicate Resolution
            deduped, merge_log_df, blocking_stats = self.resolve_duplicates(records)

            # 4. Confidence Recalibration
            recalibrated = self.recalibrate_confidence(deduped)

            # 5. Lead Scoring
            scored = self.score_leads(recalibrated, now)

            # 6. Report Generation
            report = self.generate_report(original_count, records, scored,
                                          blocking_stats, validation_summary)

            # 7. Save results if output path specified
            if output_path:
                self._save_results(scored, merge_log_df, output_path)

            total_duration = time.time() - self.pipeline_start_time
            logger.info(f"Pipeline completed successfully in {total_duration:.2f} seconds")

            return report

        except Exception as e:
            logger.error(f"Pipeline failed: {e}")
            raise

    def _save_results(self, scored: List[Record], merge_log_df: pd.DataFrame, output_path: str):
        """Save pipeline results to specified path."""
        output_dir = Path(output_path)
        output_dir.mkdir(parents=True, exist_ok=True)

        records_to_dataframe(scored).to_csv(output_dir / "scored_permits.csv", index=False)
        merge_log_df.to_csv(output_dir / "merge_log.csv", index=False)

        logger.info(f"Results saved to {output_path}")


def main():
    """Main entry point for PermitVerify pipeline."""
    parser = argparse.ArgumentParser(description="PermitVerify Lead Resolution Pipeline")
    parser.add_argument("--input", required=True, help="Input permit file (.csv, .parquet, .json, .jsonl)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    parser.add_argument("--output", help="Output directory path")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    # Ensure log directory exists
    Path("logs").mkdir(exist_ok=True)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/permit_verify.log")
        ]
    )

    try:
        # Initialize and run pipeline
        pipeline = PermitVerifyPipeline(args.config)
        report = pipeline.run_pipeline(
            input_path=args.input,
            output_path=args.output
        )

        # Print summary
        print("\n" + "="*50)
        print("PIPELINE EXECUTION SUMMARY")
        print("="*50)
        print(f"Original Records: {report['data_processing']['original_records']:,}")
        print(f"Final Leads: {report['data_processing']['final_records']:,}")
        print(f"Duplicate Reduction: {report['data_processing']['duplicate_reduction']:,} "
              f"({report['data_processing']['duplicate_reduction_percentage']:.1f}%)")
        print(f"Multi-Signal Leads: {report['deduplication_statistics']['multi_signal_leads']:,}")
        if report["score_statistics"].get("scored_count"):
            print(f"Mean Lead Score: {report['score_statistics']['mean_score']:.1f}")
        print(f"Total Duration: {report['pipeline_execution']['total_duration']:.2f} seconds")
        print("="*50)

    except Exception as e:
        logger.error(f"Pipeline execution failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
