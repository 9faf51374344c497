"""
Schema Inferencer — Typed column model for a parsed survey
============================================================
Each column is classified once, at load time, as NUMERIC or CATEGORICAL.
Downstream components only consume Column/Dataset accessors; nothing
re-parses raw strings on its own.

Classification rule:
  present values    = cells that are non-empty after trimming
  numeric fraction  = parseable-as-finite-number / present
  NUMERIC iff numeric fraction > thresholds.numeric_fraction_threshold
  no present values → CATEGORICAL
A caller may pin any column's kind through `type_overrides`.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .csv_parser import ParsedTable
from .errors import UnknownColumn
from .thresholds import AnalysisThresholds

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class ColumnKind(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"

    @classmethod
    def parse(cls, value: Union[str, 'ColumnKind']) -> 'ColumnKind':
        if isinstance(value, ColumnKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown column kind: {value!r}") from None


# ═══════════════════════════════════════════════════════════════
# VALUE HELPERS
# ═══════════════════════════════════════════════════════════════

def is_present(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def parse_number(value: Optional[str]) -> Optional[float]:
    """Parse a decimal literal. Returns None for empty, non-numeric or non-finite text."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or not _NUMBER_RE.match(text):
        return None
    number = float(text)
    if not math.isfinite(number):
        return None
    return number


def numeric_fraction(values: Iterable[Optional[str]]) -> Tuple[float, int]:
    """Fraction of present values that parse as numbers, and the present count."""
    present = 0
    numeric = 0
    for v in values:
        if not is_present(v):
            continue
        present += 1
        if parse_number(v) is not None:
            numeric += 1
    if present == 0:
        return 0.0, 0
    return numeric / present, present


def infer_kind(
    values: Iterable[Optional[str]],
    thresholds: Optional[AnalysisThresholds] = None,
) -> ColumnKind:
    thresholds = thresholds or AnalysisThresholds()
    fraction, present = numeric_fraction(values)
    if present == 0:
        return ColumnKind.CATEGORICAL
    if fraction > thresholds.numeric_fraction_threshold:
        return ColumnKind.NUMERIC
    return ColumnKind.CATEGORICAL


# ═══════════════════════════════════════════════════════════════
# COLUMN / DATASET
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Column:
    name: str
    kind: ColumnKind
    raw_values: Tuple[str, ...]

    @property
    def total_rows(self) -> int:
        return len(self.raw_values)

    @property
    def missing_count(self) -> int:
        return sum(1 for v in self.raw_values if not is_present(v))

    @property
    def is_numeric(self) -> bool:
        return self.kind == ColumnKind.NUMERIC

    def present_values(self) -> List[str]:
        return [v for v in self.raw_values if is_present(v)]

    def numeric_values(self) -> List[float]:
        """Present values that parse as numbers, in row order."""
        out = []
        for v in self.raw_values:
            number = parse_number(v)
            if number is not None:
                out.append(number)
        return out

    def value_at(self, row: int) -> str:
        return self.raw_values[row]

    def number_at(self, row: int) -> Optional[float]:
        return parse_number(self.raw_values[row])

    def unique_count(self) -> int:
        return len(set(self.present_values()))


@dataclass(frozen=True)
class Dataset:
    columns: Tuple[Column, ...]
    total_rows: int
    rows: Tuple[Dict[str, str], ...] = field(default=(), repr=False, compare=False)

    @property
    def total_columns(self) -> int:
        return len(self.columns)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def has_column(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)

    def column(self, name: str, role: str = "estimating") -> Column:
        for c in self.columns:
            if c.name == name:
                return c
        raise UnknownColumn(name, role=role)

    def numeric_columns(self) -> List[Column]:
        return [c for c in self.columns if c.kind == ColumnKind.NUMERIC]

    def categorical_columns(self) -> List[Column]:
        return [c for c in self.columns if c.kind == ColumnKind.CATEGORICAL]

    @property
    def missing_cells(self) -> int:
        return sum(c.missing_count for c in self.columns)

    @property
    def total_cells(self) -> int:
        return self.total_rows * self.total_columns


def build_dataset(
    table: ParsedTable,
    thresholds: Optional[AnalysisThresholds] = None,
    type_overrides: Optional[Dict[str, Any]] = None,
) -> Dataset:
    """
    Classify every column of a parsed table and freeze it into a Dataset.
    Overrides naming a column that is not in the header raise UnknownColumn.
    """
    thresholds = thresholds or AnalysisThresholds()
    overrides = {k: ColumnKind.parse(v) for k, v in (type_overrides or {}).items()}
    for name in overrides:
        if name not in table.headers:
            raise UnknownColumn(name, role="type override")

    columns: List[Column] = []
    for header in table.headers:
        values = tuple(table.column_values(header))
        if header in overrides:
            kind = overrides[header]
            logger.debug(f"Column '{header}' pinned to {kind.value}")
        else:
            kind = infer_kind(values, thresholds)
            logger.debug(f"Column '{header}' inferred as {kind.value}")
        columns.append(Column(name=header, kind=kind, raw_values=values))

    return Dataset(
        columns=tuple(columns),
        total_rows=table.total_rows,
        rows=tuple(table.rows),
    )
