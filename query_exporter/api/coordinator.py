from __future__ import annotations
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional
import json
import time

import mysql.connector
import structlog

from query_exporter.config.env import DatabaseConfig, ExportSettings
from query_exporter.config.logger_config import bind_request_id
from query_exporter.exports.cells import TEXT_ENCODING, TEXT_ERRORS
from query_exporter.exports.errors import (
    BadMethod,
    BadRequest,
    DatabaseConnectionError,
    ExportError,
    FileError,
    MissingParameter,
)
from query_exporter.exports.streamer import stream

log = structlog.get_logger(__name__)

SUBMIT_METHOD = "POST"
PING_QUERY = "SELECT 1"

Connector = Callable[[], Any]


@dataclass(frozen=True)
class ExportRequest:
    query: str
    output_file: str = ""


@dataclass(frozen=True)
class ExportResult:
    file_path: str
    public_url: str

    def to_json(self) -> Dict[str, str]:
        return {
            "message": "Export successful",
            "file": self.file_path,
            "url": self.public_url,
        }


_DECODER = json.JSONDecoder()


def parse_request(body: bytes | str) -> ExportRequest:
    """Decode the first JSON value in `body`; anything after it is ignored."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BadRequest("Invalid JSON request") from exc
    try:
        payload, _ = _DECODER.raw_decode(body.lstrip())
    except (TypeError, ValueError) as exc:
        raise BadRequest("Invalid JSON request") from exc
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise BadRequest("Invalid JSON request")

    query = payload.get("query")
    output_file = payload.get("output_file")
    if query is None:
        query = ""
    if output_file is None:
        output_file = ""
    if not isinstance(query, str) or not isinstance(output_file, str):
        raise BadRequest("Invalid JSON request")

    if not query:
        raise MissingParameter("Missing 'query' parameter")
    return ExportRequest(query=query, output_file=output_file)


def default_filename(now: float) -> str:
    # Second granularity: two unnamed exports in the same second share a file.
    return f"export_{int(now)}.csv"


def mysql_connector(config: DatabaseConfig) -> Connector:
    """Connection factory for the configured MySQL database."""
    def connect():
        # consume_results lets a cursor close cleanly after a mid-stream failure
        return mysql.connector.connect(consume_results=True, **config.connect_kwargs())

    return connect


def ping(connection: Any) -> None:
    with closing(connection.cursor()) as cursor:
        cursor.execute(PING_QUERY)
        cursor.fetchall()


class ExportCoordinator:
    """Runs one export per call: validate, connect, open the file, stream, respond.

    The connection and the output file belong to a single call and are always
    released before it returns.
    """

    def __init__(
        self,
        settings: ExportSettings,
        connect: Optional[Connector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._connect = connect or mysql_connector(settings.database)
        self._clock = clock

    def handle_export(self, method: str, body: bytes | str) -> ExportResult:
        bind_request_id()
        try:
            return self._export(method, body)
        except ExportError as err:
            log.error("export_failed", kind=err.kind, status=err.status, error=err.message)
            raise

    def _export(self, method: str, body: bytes | str) -> ExportResult:
        if (method or "").upper() != SUBMIT_METHOD:
            raise BadMethod("Invalid request method")
        req = parse_request(body)
        log.info("export_started", query_length=len(req.query), output_file=req.output_file or None)

        with closing(self._open_connection()) as connection:
            output_file = req.output_file.lstrip("/") or default_filename(self._clock())
            path = self.output_path(output_file)
            self._ensure_export_dir()

            with self._create_file(path) as sink:
                summary = stream(connection, req.query, sink, self.settings.fetch_size)

        log.info(
            "export_completed",
            file=str(path),
            columns=len(summary.columns),
            rows_written=summary.rows_written,
            rows_skipped=summary.rows_skipped,
        )
        return ExportResult(file_path=str(path), public_url=self.public_url(output_file))

    def output_path(self, output_file: str) -> Path:
        """Resolve `output_file` inside the export directory.

        A name that resolves outside the directory is a FileError.
        """
        root = self.settings.export_dir.resolve()
        path = (root / output_file.lstrip("/")).resolve()
        if path == root or not path.is_relative_to(root):
            raise FileError(
                f"Failed to create output file: {output_file!r} is outside the export directory"
            )
        return path

    def public_url(self, output_file: str) -> str:
        return f"{self.settings.public_url_prefix}/{output_file}"

    def _open_connection(self) -> Any:
        try:
            connection = self._connect()
        except Exception as exc:
            raise DatabaseConnectionError(f"Database connection failed: {exc}") from exc
        try:
            ping(connection)
        except Exception as exc:
            connection.close()
            raise DatabaseConnectionError(f"Failed to connect to database: {exc}") from exc
        log.info("database_connected")
        return connection

    def _ensure_export_dir(self) -> None:
        # A failure here resurfaces as a FileError when the file is created.
        try:
            self.settings.export_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.warning(
                "export_dir_not_created",
                path=str(self.settings.export_dir),
                error=str(exc),
            )

    def _create_file(self, path: Path):
        try:
            sink = open(path, "w", newline="", encoding=TEXT_ENCODING, errors=TEXT_ERRORS)
        except OSError as exc:
            raise FileError(f"Failed to create output file: {exc}") from exc
        log.info("output_file_created", file=str(path))
        return sink
