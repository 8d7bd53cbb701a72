from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import structlog

log = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"


class ExportRequestFailed(RuntimeError):
    def __init__(self, status: int, body: str):
        super().__init__(f"export failed with HTTP {status}: {body.strip()}")
        self.status = status
        self.body = body


@dataclass(frozen=True)
class ExportResponse:
    message: str
    file: str
    url: str


def build_payload(query: str, output_file: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"query": query}
    if output_file:
        payload["output_file"] = output_file
    return payload


def request_export(
    query: str,
    output_file: Optional[str] = None,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 60,
) -> ExportResponse:
    """POST `query` to `<base_url>/export` and decode the success body."""
    url = f"{base_url.rstrip('/')}/export"
    resp = requests.post(url, json=build_payload(query, output_file), timeout=timeout)
    if not resp.ok:
        log.error("export_request_failed", url=url, status=resp.status_code)
        raise ExportRequestFailed(resp.status_code, resp.text)
    body = resp.json()
    return ExportResponse(
        message=body.get("message", ""),
        file=body.get("file", ""),
        url=body.get("url", ""),
    )
