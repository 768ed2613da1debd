"""Defensive decoding of Genie message payloads.

A polled message is decoded into one of three shapes keyed on ``status``:
``InProgressMessage`` (keep polling), ``CompletedMessage`` (attachments to
normalize) or ``FailedMessage`` (most specific error detail). Missing or
malformed sub-fields never raise; they decode to ``None`` / empty lists so
normalization falls through to its "no data" branch.
"""

from __future__ import annotations

import json
from typing import Any, Union

import structlog
from pydantic import BaseModel, Field

from genie_chat.orchestrator.models import Cell, Column, ColumnType

logger = structlog.get_logger()

COMPLETED = "COMPLETED"
FAILED = "FAILED"
CANCELLED = "CANCELLED"

# Statuses documented as intermediate. Anything unrecognised is treated the
# same way since the remote vocabulary grows over time.
INTERMEDIATE_STATUSES = frozenset(
    {
        "SUBMITTED",
        "FETCHING_METADATA",
        "FILTERING_CONTEXT",
        "ASKING_AI",
        "PENDING_WAREHOUSE",
        "EXECUTING",
        "EXECUTING_QUERY",
        "QUERY_RESULT_EXPIRED",
    }
)


class TableResult(BaseModel):
    columns: list[Column] = Field(default_factory=list)
    rows: list[list[Cell]] = Field(default_factory=list)
    row_count: int | None = None
    truncated: bool = False


class Attachment(BaseModel):
    query_text: str | None = None
    table: TableResult | None = None
    text: str | None = None


class InProgressMessage(BaseModel):
    status: str


class CompletedMessage(BaseModel):
    status: str = COMPLETED
    attachments: list[Attachment] = Field(default_factory=list)


class FailedMessage(BaseModel):
    status: str = FAILED
    detail: str = "Query failed"


GenieMessage = Union[InProgressMessage, CompletedMessage, FailedMessage]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _decode_cell(value: Any) -> Cell:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.dumps(value, default=str)


def _decode_table(raw: Any) -> TableResult | None:
    result = _as_dict(raw)
    if not result:
        return None

    schema = _as_dict(result.get("schema") or _as_dict(result.get("manifest")).get("schema"))
    columns: list[Column] = []
    for raw_column in _as_list(schema.get("columns")):
        column = _as_dict(raw_column)
        name = column.get("name")
        columns.append(
            Column(
                name=str(name) if name is not None else f"column_{len(columns) + 1}",
                type=ColumnType.parse(column.get("type") or column.get("type_name")),
            )
        )

    rows: list[list[Cell]] = []
    for raw_row in _as_list(result.get("data_array")):
        if isinstance(raw_row, list):
            rows.append([_decode_cell(cell) for cell in raw_row])

    row_count = result.get("row_count")
    return TableResult(
        columns=columns,
        rows=rows,
        row_count=row_count if isinstance(row_count, int) else len(rows),
        truncated=bool(result.get("truncated", False)),
    )


def _decode_attachment(raw: Any) -> Attachment:
    attachment = _as_dict(raw)
    query = _as_dict(attachment.get("query"))
    text = _as_dict(attachment.get("text"))
    return Attachment(
        query_text=_as_text(query.get("query")),
        table=_decode_table(query.get("query_result")),
        text=_as_text(text.get("content")),
    )


def extract_error_detail(data: dict[str, Any]) -> str:
    """Most specific error text available on a FAILED message.

    Prefers ``error.error`` (the structured form), then a plain ``error``
    string, then any text attachment explaining the failure.
    """
    error = data.get("error")
    if isinstance(error, dict):
        inner = error.get("error") or error.get("message")
        if isinstance(inner, str) and inner:
            return inner
        return json.dumps(error, default=str)
    if isinstance(error, str) and error:
        return error

    for raw in _as_list(data.get("attachments")):
        text = _as_text(_as_dict(_as_dict(raw).get("text")).get("content"))
        if text:
            return text
    return "Query failed"


def decode_message(data: Any) -> GenieMessage:
    """Decode a polled message into its status-specific shape."""
    payload = _as_dict(data)
    status = payload.get("status")
    status = status.upper() if isinstance(status, str) else "UNKNOWN"

    if status == COMPLETED:
        attachments = [_decode_attachment(raw) for raw in _as_list(payload.get("attachments"))]
        return CompletedMessage(attachments=attachments)
    if status in (FAILED, CANCELLED):
        return FailedMessage(status=status, detail=extract_error_detail(payload))
    if status not in INTERMEDIATE_STATUSES:
        logger.warning("genie_unknown_status", status=status)
    return InProgressMessage(status=status)
