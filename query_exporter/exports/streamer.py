"""Result streamer: execute one query and write its rows to a CSV sink.

The cursor is drained with fetchmany so memory stays bounded by one batch,
regardless of result size. Row order in the sink is the cursor's order.
"""
from __future__ import annotations
import csv
from contextlib import closing
from dataclasses import dataclass
from typing import Any, Iterator, List, Sequence, TextIO

import structlog

from query_exporter.exports.cells import TEXT_ENCODING, TEXT_ERRORS, scan_row
from query_exporter.exports.errors import (
    FileError,
    QueryError,
    RowIterationError,
    ScanError,
)

log = structlog.get_logger(__name__)

DEFAULT_FETCH_SIZE = 500


@dataclass
class StreamSummary:
    columns: List[str]
    rows_written: int = 0
    rows_skipped: int = 0


def _open_cursor(connection: Any, query: str) -> Any:
    try:
        cursor = connection.cursor()
    except Exception as exc:
        raise QueryError(f"Query execution failed: {exc}") from exc
    try:
        cursor.execute(query)
    except Exception as exc:
        cursor.close()
        raise QueryError(f"Query execution failed: {exc}") from exc
    return cursor


def column_names(cursor: Any) -> List[str]:
    description = cursor.description
    if not description:
        raise ScanError("Failed to get column names: query returned no result set")
    names = []
    for col in description:
        name = col[0]
        if isinstance(name, (bytes, bytearray)):
            name = bytes(name).decode(TEXT_ENCODING, TEXT_ERRORS)
        names.append(str(name))
    return names


def iter_rows(cursor: Any, fetch_size: int = DEFAULT_FETCH_SIZE) -> Iterator[Sequence[Any]]:
    """Yield rows batch by batch; a failing fetch ends the export."""
    while True:
        try:
            batch = cursor.fetchmany(fetch_size)
        except Exception as exc:
            raise RowIterationError(f"Error reading rows: {exc}") from exc
        if not batch:
            return
        yield from batch


def _write(writer: Any, record: List[str]) -> None:
    try:
        writer.writerow(record)
    except OSError as exc:
        raise FileError(f"Failed to write output file: {exc}") from exc


def stream(
    connection: Any,
    query: str,
    sink: TextIO,
    fetch_size: int = DEFAULT_FETCH_SIZE,
) -> StreamSummary:
    """Run `query` on `connection` and write header + rows to `sink`.

    Rows that cannot be scanned are logged and skipped. Every other failure
    raises an ExportError; rows already written stay in the sink.
    """
    writer = csv.writer(sink, lineterminator="\n")
    with closing(_open_cursor(connection, query)) as cursor:
        columns = column_names(cursor)
        _write(writer, columns)
        summary = StreamSummary(columns=columns)
        log.debug("header_written", columns=len(columns))

        width = len(columns)
        for index, row in enumerate(iter_rows(cursor, fetch_size)):
            try:
                cells = scan_row(row, width)
            except ScanError as exc:
                log.warning("row_scan_failed", row=index, error=str(exc))
                summary.rows_skipped += 1
                continue
            _write(writer, cells)
            summary.rows_written += 1

    try:
        sink.flush()
    except OSError as exc:
        raise FileError(f"Failed to write output file: {exc}") from exc
    log.info(
        "stream_flushed",
        rows_written=summary.rows_written,
        rows_skipped=summary.rows_skipped,
    )
    return summary
