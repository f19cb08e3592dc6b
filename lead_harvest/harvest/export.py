import csv
import io
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

from .schema import LeadRecord

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Name", "Phone", "Email", "Website", "Address", "Source"]


def leads_to_csv(leads: Iterable[LeadRecord]) -> str:
    """Render leads as CSV text; every data field is quoted, quotes are doubled."""
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for lead in leads:
        writer.writerow(
            [
                lead.name,
                lead.phone,
                lead.email,
                lead.website,
                lead.address,
                lead.sourceUrl,
            ]
        )
    return buffer.getvalue()


def default_export_filename(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"leads_export_{now_ms}.csv"


def write_leads_csv(leads: Iterable[LeadRecord], path: str | Path) -> Path:
    """
    Write leads to a CSV file

    Args:
        leads (Iterable[LeadRecord]): leads to export
        path (str | Path): output file, or a directory to place a
            leads_export_<millis>.csv file in

    Returns:
        Path: the file written
    """
    out_path = Path(path)
    if out_path.is_dir():
        out_path = out_path / default_export_filename()
    out_path.write_text(leads_to_csv(leads), encoding="utf-8")
    logger.info("Exported leads to CSV: %s", out_path)
    return out_path
