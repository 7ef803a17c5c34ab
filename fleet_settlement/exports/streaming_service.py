### fleet_settlement/exports/streaming_service.py

"""
Streaming Export Service

Writes query results to CSV or Excel files batch by batch, so a large
ledger never has to be held in memory.
"""

import csv
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Font
from sqlalchemy.orm import Query

from fleet_settlement.core.config import settings
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("csv", "excel")

MEDIA_TYPES = {
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

FILE_EXTENSIONS = {"csv": "csv", "excel": "xlsx"}


class StreamingExportService:
    """
    Service for streaming query results directly to files.

    - SQLAlchemy yield_per() for batched reads
    - Write-only mode for Excel (openpyxl)
    - Incremental CSV writing
    """

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = Path(output_dir or settings.export_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def stream_query_to_file(
        self,
        query: Query,
        filename: str,
        export_format: str,
        row_transformer: Callable[[Any], Dict],
        headers: List[str],
        batch_size: int = 1000,
    ) -> Tuple[str, int]:
        """
        Stream query results to a file in the given format.

        Returns:
            Tuple of (file_path, record_count)
        """
        if export_format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported export format: {export_format}")

        filepath = self.output_dir / f"{filename}.{FILE_EXTENSIONS[export_format]}"
        logger.info("Starting streaming export", filepath=str(filepath), export_format=export_format)

        rows = (row_transformer(obj) for batch in self._batch_query_results(query, batch_size) for obj in batch)
        try:
            if export_format == "excel":
                count = self._write_excel(filepath, rows, headers)
            else:
                count = self._write_csv(filepath, rows, headers)
        except Exception as e:
            logger.error("Error during export", filepath=str(filepath), error=str(e), exc_info=True)
            if filepath.exists():
                filepath.unlink()
            raise

        logger.info("Export completed", filepath=str(filepath), records=count)
        return str(filepath), count

    def _write_excel(self, filepath: Path, rows: Iterator[Dict], headers: List[str]) -> int:
        workbook = Workbook(write_only=True)
        sheet = workbook.create_sheet(title="Export")

        header_font = Font(bold=True)
        header_cells = []
        for header in headers:
            cell = WriteOnlyCell(sheet, value=header)
            cell.font = header_font
            header_cells.append(cell)
        sheet.append(header_cells)

        count = 0
        for row in rows:
            sheet.append([self._excel_value(row.get(h)) for h in headers])
            count += 1
        workbook.save(filepath)
        return count

    def _write_csv(self, filepath: Path, rows: Iterator[Dict], headers: List[str]) -> int:
        count = 0
        with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=headers)
            writer.writeheader()
            for row in rows:
                writer.writerow({h: self._serialize_value(row.get(h)) for h in headers})
                count += 1
                if count % 10000 == 0:
                    logger.info("Processed export records", records=count)
                    csvfile.flush()
        return count

    def _batch_query_results(self, query: Query, batch_size: int):
        batch = []
        for row in query.yield_per(batch_size):
            batch.append(row)
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    @staticmethod
    def _serialize_value(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return f"{value:.2f}"
        return str(value)

    @staticmethod
    def _excel_value(value: Any) -> Any:
        # openpyxl cannot write tz-aware datetimes
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.replace(tzinfo=None)
        if isinstance(value, Decimal):
            return float(value)
        return "" if value is None else value
