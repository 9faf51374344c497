"""
CSV Parser — Raw survey text to a rectangular table
=====================================================
Turns uploaded CSV text into ordered headers plus one mapping per data row.

Rules:
  - Strips a leading byte-order mark, normalizes \\r\\n and \\r to \\n,
    drops trailing blank lines.
  - Double-quoted fields may contain commas and newlines; "" inside a
    quoted field is a literal quote.
  - Unquoted text is trimmed of surrounding whitespace.
  - Ragged rows are accepted: missing trailing fields become "", extra
    fields are dropped.
  - Fewer than two records (header + one data row) or an unterminated
    quote raises ParseError.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import ParseError

logger = logging.getLogger(__name__)

BOM = "\ufeff"
QUOTE = '"'
DELIMITER = ","


@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def total_columns(self) -> int:
        return len(self.headers)

    def column_values(self, header: str) -> List[str]:
        return [row.get(header, "") for row in self.rows]


def normalize_text(text: str) -> str:
    """Strip BOM, unify line endings, drop trailing blank lines."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


class _FieldBuffer:
    """Accumulates one field, remembering which characters came from quotes."""

    def __init__(self):
        self.chars: List[str] = []
        self.quoted = False
        self.quote_start = 0
        self.quote_end = 0

    def open_quote(self):
        if not self.quoted:
            self.quote_start = len(self.chars)
        self.quoted = True

    def close_quote(self):
        self.quote_end = len(self.chars)

    def add(self, ch: str):
        self.chars.append(ch)

    def value(self) -> str:
        raw = "".join(self.chars)
        if not self.quoted:
            return raw.strip()
        head = raw[:self.quote_start].lstrip()
        body = raw[self.quote_start:self.quote_end]
        tail = raw[self.quote_end:].rstrip()
        return head + body + tail


def split_records(text: str) -> List[List[str]]:
    """Split normalized CSV text into records of fields."""
    records: List[List[str]] = []
    fields: List[str] = []
    buf = _FieldBuffer()
    in_quotes = False
    quote_line = 0
    line = 1
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == QUOTE:
                if i + 1 < n and text[i + 1] == QUOTE:
                    buf.add(QUOTE)
                    i += 2
                    continue
                in_quotes = False
                buf.close_quote()
            else:
                if ch == "\n":
                    line += 1
                buf.add(ch)
        elif ch == QUOTE:
            in_quotes = True
            quote_line = line
            buf.open_quote()
        elif ch == DELIMITER:
            fields.append(buf.value())
            buf = _FieldBuffer()
        elif ch == "\n":
            fields.append(buf.value())
            records.append(fields)
            fields = []
            buf = _FieldBuffer()
            line += 1
        else:
            buf.add(ch)
        i += 1

    if in_quotes:
        raise ParseError("Unterminated quoted field", line=quote_line)

    fields.append(buf.value())
    records.append(fields)
    return records


def _unique_headers(raw_headers: List[str]) -> List[str]:
    headers: List[str] = []
    seen = set()
    for idx, name in enumerate(raw_headers):
        name = name or f"Column {idx + 1}"
        if name in seen:
            raise ParseError(f"Duplicate column name in header row: '{name}'", line=1)
        seen.add(name)
        headers.append(name)
    return headers


def parse_csv(text: str) -> ParsedTable:
    """
    Parse raw CSV text into headers and row mappings.
    Missing cells are represented by the empty string.
    """
    if text is None:
        raise ParseError("No CSV content supplied")

    records = split_records(normalize_text(text)) if text.strip(BOM + " \t\r\n") else []
    if len(records) < 2:
        raise ParseError("CSV must have at least a header and one data row")

    headers = _unique_headers(records[0])
    width = len(headers)
    rows: List[Dict[str, str]] = []
    ragged = 0

    for values in records[1:]:
        if len(values) != width:
            ragged += 1
        padded = (values + [""] * width)[:width]
        rows.append(dict(zip(headers, padded)))

    if ragged:
        logger.debug(f"{ragged} ragged row(s) padded or truncated to {width} fields")
    logger.info(f"Parsed CSV: {len(rows)} rows x {width} columns")
    return ParsedTable(headers=headers, rows=rows)
