"""Parse uploaded CSV/TSV spreadsheets into raw rows."""
import io
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import pandas as pd

from models import FieldMapping, Reading, SourceKind
from ingestion.field_mapping import resolve_field_mapping
from ingestion.normalizer import normalize_rows, DEFAULT_SAMPLE_INTERVAL
from exceptions import EmptySourceError, ValidationError
from logging_config import get_logger

logger = get_logger("ingestion.spreadsheet")

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def parse_spreadsheet(content: bytes, filename: str = "upload.csv") -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Parse an uploaded spreadsheet.

    Args:
        content: Raw file bytes
        filename: Original name; a ``.tsv`` suffix selects tab separation

    Returns:
        (headers, rows) with one row per non-blank data line, as
        header -> cell dictionaries; empty cells are None

    Raises:
        ValidationError: If the file cannot be decoded or parsed
        EmptySourceError: If the file has a header but no data rows
    """
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError(
            "Spreadsheet too large",
            details={"filename": filename, "max_bytes": MAX_UPLOAD_BYTES}
        )

    sep = "\t" if filename.lower().endswith(".tsv") else ","

    try:
        text = content.decode("utf-8-sig")
        df = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            skip_blank_lines=True,
            dtype=str,
            keep_default_na=False
        )
    except UnicodeDecodeError:
        raise ValidationError(
            "Spreadsheet must be UTF-8 encoded text",
            details={"filename": filename}
        )
    except pd.errors.EmptyDataError:
        raise EmptySourceError(
            "Spreadsheet is empty",
            details={"filename": filename}
        )
    except pd.errors.ParserError as e:
        raise ValidationError(
            f"Could not parse spreadsheet: {e}",
            details={"filename": filename}
        )

    df.columns = [str(c).strip() for c in df.columns]
    df = df.apply(lambda col: col.str.strip())
    # blank lines are already skipped; rows of empty cells stay as all-null rows
    df = df.replace({"": None})

    if df.empty:
        raise EmptySourceError(
            "Spreadsheet has no data rows",
            details={"filename": filename, "headers": list(df.columns)}
        )

    headers = list(df.columns)
    rows = [
        {h: (None if pd.isna(v) else v) for h, v in record.items()}
        for record in df.to_dict(orient="records")
    ]

    logger.info(f"Parsed {len(rows)} rows with {len(headers)} columns from {filename}")
    return headers, rows


def normalize_spreadsheet(
    content: bytes,
    filename: str = "upload.csv",
    now: Optional[datetime] = None,
    sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL
) -> Tuple[FieldMapping, List[Reading], Dict[str, Any]]:
    """
    Parse a spreadsheet and map its headers onto canonical readings.

    Returns:
        (mapping, readings, details)
    """
    headers, rows = parse_spreadsheet(content, filename)
    mapping = resolve_field_mapping(headers)
    readings = normalize_rows(
        rows, mapping, SourceKind.SPREADSHEET,
        now=now, sample_interval=sample_interval
    )

    details = {
        "filename": filename,
        "headers": headers,
        "field_mapping": mapping.as_dict(),
        "guessed_fields": mapping.guessed(),
        "sample_count": len(readings),
    }
    return mapping, readings, details
