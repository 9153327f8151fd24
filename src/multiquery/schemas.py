from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from multiquery.errors import ErrorCode, RenderError


class QueryOutcome(BaseModel):
    """
    Result of running the query against one endpoint.

    Rows are ordered snapshots aligned with ``columns``; ``None`` marks SQL NULL.
    """
    model_config = ConfigDict(frozen=True)

    endpoint_id: str
    success: bool
    error_message: str = ""
    error_code: Optional[ErrorCode] = None
    columns: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    elapsed_ms: float = 0.0

    @model_validator(mode="after")
    def _check_contract(self) -> "QueryOutcome":
        if not self.success:
            if self.columns or self.rows:
                raise ValueError("failed outcome must not carry columns or rows")
            if not self.error_message:
                raise ValueError("failed outcome requires an error message")
            return self

        width = len(self.columns)
        for i, row in enumerate(self.rows, start=1):
            if len(row) != width:
                raise RenderError(
                    f"[{self.endpoint_id}] row {i} has {len(row)} values for {width} columns"
                )
        return self

    @classmethod
    def failure(
        cls,
        endpoint_id: str,
        message: str,
        elapsed_ms: float = 0.0,
        error_code: ErrorCode = ErrorCode.DB_EXECUTION_ERROR,
    ) -> "QueryOutcome":
        return cls(
            endpoint_id=endpoint_id,
            success=False,
            error_message=message or error_code.value,
            error_code=error_code,
            elapsed_ms=elapsed_ms,
        )

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_row_dicts(self) -> List[Dict[str, Any]]:
        """Rows as name -> value mappings. Later duplicate column names win."""
        return [dict(zip(self.columns, row)) for row in self.rows]


class ConnectionTestResult(BaseModel):
    """Outcome of a connectivity probe against one endpoint."""
    endpoint_id: str
    success: bool
    message: str = ""
    error_code: Optional[str] = None
    server_version: Optional[str] = None
    duration_ms: float = 0.0


class MultiQueryResult(BaseModel):
    """Batch form: all outcomes of one run, in endpoint order."""
    query_file: Optional[str] = None
    outcomes: List[QueryOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[QueryOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[QueryOutcome]:
        return [o for o in self.outcomes if not o.success]
