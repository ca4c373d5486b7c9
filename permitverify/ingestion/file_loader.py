"""
File loader for PermitVerify.

Loads permit batches produced by the per-source ingestion connectors from
CSV, Parquet and JSON-lines files, and maps DataFrame rows to and from
permit records.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import pandas as pd
import pyarrow.parquet as pq

from ..models import Classification, Enrichment, Record

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {".csv": "csv", ".parquet": "parquet", ".json": "json", ".jsonl": "json"}


def load_permit_file(input_path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a permit batch from a local file.

    Args:
        input_path: Path to a .csv, .parquet, .json or .jsonl file

    Returns:
        Pandas DataFrame with one row per permit
    """
    path = Path(input_path)
    file_format = SUPPORTED_FORMATS.get(path.suffix.lower())

    if file_format is None:
        raise ValueError(f"Unsupported file format: {input_path}")

    if file_format == "csv":
        df = pd.read_csv(path, dtype={"id": str})
    elif file_format == "parquet":
        table = pq.read_table(path)
        df = table.to_pandas()
    else:
        df = pd.read_json(path, lines=True, dtype={"id": str})

    logger.info(f"Loaded {file_format.upper()} {input_path} with {len(df)} rows")
    return df


def _clean(value: Any) -> Any:
    """Map pandas missing markers (NaN, NaT, None) to None."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def _as_bool(value: Any) -> bool:
    value = _clean(value)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def _as_float(value: Any, default: float = 0.0) -> float:
    value = _clean(value)
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value {value!r}, using {default}")
        return default
    return default if math.isnan(result) else result


def _parse_classification(value: Any) -> Optional[Classification]:
    value = _clean(value)
    if value is None or value == "":
        return None
    if isinstance(value, Classification):
        return value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning(f"Unreadable classification payload, ignoring: {e}")
            return None
    if not isinstance(value, dict):
        logger.warning(f"Unexpected classification payload type {type(value).__name__}, ignoring")
        return None
    return Classification.from_raw(value)


def _parse_merged_with(value: Any) -> List[str]:
    value = _clean(value)
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [v for v in value.split(";") if v]
    return [str(v) for v in value]


def record_from_row(row: Dict[str, Any]) -> Record:
    """
    Build a permit record from a flat row dictionary.

    Args:
        row: Row with the common permit schema columns

    Returns:
        Permit record
    """
    latitude = _clean(row.get("latitude"))
    longitude = _clean(row.get("longitude"))
    coordinates = None
    if latitude is not None and longitude is not None:
        coordinates = (_as_float(latitude), _as_float(longitude))

    enrichment = None
    if _clean(row.get("enrichment_verified")) is not None:
        enrichment = Enrichment(
            verified=_as_bool(row.get("enrichment_verified")),
            registry=_clean(row.get("enrichment_registry"))
        )

    score = _clean(row.get("score"))

    return Record(
        id=str(row.get("id")),
        address=_clean(row.get("address")) or "",
        city=str(_clean(row.get("city")) or ""),
        valuation=_as_float(row.get("valuation")),
        applied_date=_clean(row.get("applied_date")),
        data_source=str(_clean(row.get("data_source")) or ""),
        description=str(_clean(row.get("description")) or ""),
        permit_type=str(_clean(row.get("permit_type")) or ""),
        coordinates=coordinates,
        classification=_parse_classification(row.get("classification")),
        enrichment=enrichment,
        score=int(_as_float(score)) if score is not None else None,
        is_high_quality=_as_bool(row.get("is_high_quality", False)),
        merged_with=_parse_merged_with(row.get("merged_with"))
    )


def records_from_dataframe(df: pd.DataFrame) -> List[Record]:
    """
    Convert a permit DataFrame into records.

    Args:
        df: DataFrame with the common permit schema

    Returns:
        List of permit records in row order
    """
    records = [record_from_row(row) for row in df.to_dict(orient="records")]
    logger.info(f"Mapped {len(records)} rows to permit records")
    return records


def records_to_dataframe(records: Sequence[Record]) -> pd.DataFrame:
    """
    Flatten permit records into a DataFrame for export.

    Args:
        records: Permit records

    Returns:
        DataFrame with one row per record
    """
    rows = []
    for record in records:
        classification = record.classification
        rows.append({
            "id": record.id,
            "address": record.address,
            "city": record.city,
            "valuation": record.valuation,
            "applied_date": record.applied_date,
            "data_source": record.data_source,
            "description": record.description,
            "permit_type": record.permit_type,
            "latitude": record.coordinates[0] if record.coordinates else None,
            "longitude": record.coordinates[1] if record.coordinates else None,
            "confidence_score": classification.confidence_score if classification else None,
            "signal_strength": (classification.signal_strength.value
                                if classification and classification.signal_strength else None),
            "is_commercial_trigger": classification.is_commercial_trigger if classification else None,
            "classification": json.dumps(classification.to_dict()) if classification else None,
            "enrichment_verified": record.enrichment.verified if record.enrichment else None,
            "score": record.score,
            "is_high_quality": record.is_high_quality,
            "merged_with": ";".join(record.merged_with)
        })

    return pd.DataFrame(rows)
