"""
Analysis Errors — Typed failure taxonomy for the survey engine.

  SurveyAnalysisError      — base class, carries a stable `code`
  ├── ParseError           — malformed CSV structure (whole dataset rejected)
  ├── UnknownColumn        — request names a column the dataset lacks
  ├── UnsupportedAggregation — unknown aggregation name, or one incompatible
  │                            with the column kind
  └── InsufficientData     — statistic needs more points than available
"""

from typing import Any, Dict, List, Optional


class SurveyAnalysisError(Exception):
    """Base for every error the analysis core raises on purpose."""

    code: str = "analysis_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ParseError(SurveyAnalysisError):
    code = "parse_error"

    def __init__(self, message: str, line: Optional[int] = None):
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)
        self.line = line

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["line"] = self.line
        return d


class UnknownColumn(SurveyAnalysisError):
    code = "unknown_column"

    def __init__(self, column: str, role: str = "estimating"):
        super().__init__(f"Unknown {role} column: '{column}'")
        self.column = column
        self.role = role

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"column": self.column, "role": self.role})
        return d


class UnsupportedAggregation(SurveyAnalysisError):
    code = "unsupported_aggregation"

    def __init__(self, aggregation: str, kind: Optional[str] = None,
                 column: Optional[str] = None, known: Optional[List[str]] = None):
        if kind is None:
            message = f"Unknown aggregation '{aggregation}'"
            if known:
                message += f"; expected one of: {', '.join(known)}"
        else:
            target = f"{kind} column '{column}'" if column else f"{kind} column"
            message = f"Aggregation '{aggregation}' is not supported on a {target}"
        super().__init__(message)
        self.aggregation = aggregation
        self.kind = kind
        self.column = column

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"aggregation": self.aggregation, "kind": self.kind, "column": self.column})
        return d


class InsufficientData(SurveyAnalysisError):
    code = "insufficient_data"

    def __init__(self, statistic: str, required: int, available: int, reason: Optional[str] = None):
        message = f"{statistic} needs at least {required} data points, got {available}"
        if reason:
            message = f"{statistic} unavailable: {reason}"
        super().__init__(message)
        self.statistic = statistic
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({
            "statistic": self.statistic,
            "required": self.required,
            "available": self.available,
        })
        return d
