"""
Reads a FileMaker-style wide CSV export into CsvRow records.

One input line per participant (ID, IDSTATUS, then one column per date);
one CsvRow per non-empty date cell. Column meaning is decided later by the
planner's column rules.
"""
import csv
import io
import logging
from typing import IO, Iterator, List, Union

from event_planner import CsvRow

log = logging.getLogger("checkinbridge.csv")

ID_COLUMN = "ID"
STATUS_COLUMN = "IDSTATUS"


def iter_rows(stream: IO[str], id_column: str = ID_COLUMN, status_column: str = STATUS_COLUMN) -> Iterator[CsvRow]:
    reader = csv.DictReader(stream)
    if not reader.fieldnames or id_column not in reader.fieldnames:
        raise ValueError(f"CSV is missing the {id_column} column")

    for line_no, record in enumerate(reader, 2):
        participant_id = (record.get(id_column) or "").strip()
        if not participant_id:
            log.debug(f"Line {line_no}: no {id_column}, skipping")
            continue
        status = (record.get(status_column) or "").strip()
        for column, value in record.items():
            if column in (id_column, status_column) or column is None:
                continue
            value = (value or "").strip()
            if not value:
                continue
            yield CsvRow(participant_id=participant_id, column_code=column.strip(), raw_date=value, status=status)


def read_rows(source: Union[str, bytes], **kwargs) -> List[CsvRow]:
    """Rows from a file path, or from raw bytes of an uploaded file."""
    if isinstance(source, bytes):
        return list(iter_rows(io.StringIO(source.decode("utf-8-sig")), **kwargs))
    with open(source, "r", encoding="utf-8-sig", newline="") as f:
        return list(iter_rows(f, **kwargs))
