"""Error taxonomy for the reporting engine.

Validation errors are client-correctable (a transport maps them to 400).
``BackingStoreError`` and ``ReconciliationMismatch`` are server failures.
"""

from __future__ import annotations

from typing import Any


class ReportError(Exception):
    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def client_correctable(self) -> bool:
        return self.status_code < 500

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ReportError):
    code = "VALIDATION_ERROR"
    status_code = 400


class UnknownDimension(ValidationError):
    code = "UNKNOWN_DIMENSION"

    def __init__(self, family: str, dimension_id: str) -> None:
        super().__init__(f"Unknown dimension for {family}: {dimension_id}", family=family, dimension_id=dimension_id)


class UnknownMetric(ValidationError):
    code = "UNKNOWN_METRIC"

    def __init__(self, family: str, metric_id: str) -> None:
        super().__init__(f"Unknown metric for {family}: {metric_id}", family=family, metric_id=metric_id)


class DepthOutOfRange(ValidationError):
    code = "DEPTH_OUT_OF_RANGE"

    def __init__(self, depth: int, dimension_count: int) -> None:
        super().__init__(
            f"Depth {depth} is outside 0..{dimension_count - 1}",
            depth=depth,
            dimension_count=dimension_count,
        )


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"


class InvalidSortDirection(ValidationError):
    code = "INVALID_SORT_DIRECTION"


class InvalidParentFilters(ValidationError):
    code = "INVALID_PARENT_FILTERS"


class BackingStoreError(ReportError):
    code = "DATABASE_ERROR"


class ReconciliationMismatch(ReportError):
    code = "RECONCILIATION_MISMATCH"
