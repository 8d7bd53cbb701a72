from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Sequence

from query_exporter.exports.errors import ScanError

NULL_TEXT = "NULL"
# Undecodable bytes survive as lone surrogates and are restored on write.
TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "surrogateescape"


class CellKind(Enum):
    NULL = "null"
    BINARY = "binary"
    SCALAR = "scalar"


@dataclass(frozen=True)
class RowValue:
    kind: CellKind
    value: Any = None

    @classmethod
    def of(cls, value: Any) -> "RowValue":
        if value is None:
            return cls(CellKind.NULL)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(CellKind.BINARY, bytes(value))
        return cls(CellKind.SCALAR, value)

    def to_cell(self) -> str:
        if self.kind is CellKind.NULL:
            return NULL_TEXT
        if self.kind is CellKind.BINARY:
            return self.value.decode(TEXT_ENCODING, TEXT_ERRORS)
        return str(self.value)


def coerce_cell(value: Any) -> str:
    return RowValue.of(value).to_cell()


def scan_row(row: Sequence[Any], width: int) -> List[str]:
    """Materialize one fetched row into exactly `width` CSV cells.

    Raises ScanError when the row cannot be read; the caller decides whether
    that is fatal.
    """
    try:
        values = list(row)
    except TypeError as exc:
        raise ScanError(f"row is not a sequence: {exc}") from exc
    if len(values) != width:
        raise ScanError(f"expected {width} columns, got {len(values)}")
    cells = []
    for idx, value in enumerate(values):
        try:
            cells.append(coerce_cell(value))
        except Exception as exc:
            raise ScanError(f"column {idx}: {exc}") from exc
    return cells
