"""
Spreadsheet Export
Writes reviewed BOM records to Excel, CSV or JSON.
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .records import BomRecord, EXPORT_COLUMNS, flatten_records

logger = logging.getLogger(__name__)


SHEET_NAME = "BOM Data"


def export_filename(extension: str, timestamp: Optional[datetime] = None) -> str:
    """BOM_Export_2024-05-01T10-22-31-123456.xlsx style name."""
    stamp = (timestamp or datetime.now()).isoformat().replace(":", "-").replace(".", "-")
    return f"BOM_Export_{stamp}.{extension}"


def _prepare(records: List[BomRecord], output_dir: str, filename: Optional[str], extension: str) -> Path:
    if not records or not any(record.bom for record in records):
        raise ValueError("No data to export.")

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    return output_path / (filename or export_filename(extension))


def export_to_excel(records: List[BomRecord], output_dir: str, filename: Optional[str] = None) -> str:
    """
    Export records to an .xlsx workbook with a single 'BOM Data' sheet.

    Raises:
        ValueError: If there are no rows to export
    """
    path = _prepare(records, output_dir, filename, "xlsx")

    df = pd.DataFrame(flatten_records(records), columns=EXPORT_COLUMNS)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)

    logger.info(f"Excel export saved: {path} ({len(df)} rows)")
    return str(path)


def export_to_csv(records: List[BomRecord], output_dir: str, filename: Optional[str] = None) -> str:
    """Export records to CSV with the same columns as the Excel export."""
    path = _prepare(records, output_dir, filename, "csv")
    rows = flatten_records(records)

    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            if row["Qty (Value)"] is None:
                row = {**row, "Qty (Value)": ""}
            writer.writerow(row)

    logger.info(f"CSV export saved: {path} ({len(rows)} rows)")
    return str(path)


def export_to_json(records: List[BomRecord], output_dir: str, filename: Optional[str] = None) -> str:
    """Export records as nested JSON (records → BOM items)."""
    path = _prepare(records, output_dir, filename, "json")

    with open(path, 'w', encoding='utf-8') as f:
        json.dump([record.to_dict() for record in records], f, indent=2)

    logger.info(f"JSON export saved: {path}")
    return str(path)


EXPORTERS = {
    "xlsx": export_to_excel,
    "csv": export_to_csv,
    "json": export_to_json,
}


def export_records(
    records: List[BomRecord],
    output_dir: str,
    formats: List[str],
    timestamp: Optional[datetime] = None
) -> List[str]:
    """
    Export to several formats sharing one timestamped base name.

    Raises:
        ValueError: On unknown format or empty data
    """
    unknown = [fmt for fmt in formats if fmt not in EXPORTERS]
    if unknown:
        raise ValueError(f"Unknown export format(s): {unknown}. Supported: {list(EXPORTERS.keys())}")

    timestamp = timestamp or datetime.now()
    paths = []
    for fmt in formats:
        paths.append(EXPORTERS[fmt](records, output_dir, export_filename(fmt, timestamp)))
    return paths
