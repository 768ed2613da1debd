from __future__ import annotations

from genie_chat.orchestrator.models import ColumnType
from genie_chat.orchestrator.payloads import (
    CompletedMessage,
    FailedMessage,
    InProgressMessage,
    decode_message,
    extract_error_detail,
)
from tests.unit.fakes import table_attachment


def test_intermediate_statuses_decode_as_in_progress() -> None:
    for status in ("EXECUTING", "FILTERING_CONTEXT", "QUERY_RESULT_EXPIRED", "SUBMITTED"):
        decoded = decode_message({"status": status})
        assert isinstance(decoded, InProgressMessage)
        assert decoded.status == status


def test_missing_or_odd_status_decodes_as_in_progress() -> None:
    """Unrecognised or absent statuses are retryable, never fatal."""
    assert isinstance(decode_message({}), InProgressMessage)
    assert isinstance(decode_message({"status": 42}), InProgressMessage)
    assert isinstance(decode_message(None), InProgressMessage)
    assert isinstance(decode_message({"status": "BRAND_NEW"}), InProgressMessage)


def test_completed_message_decodes_table_and_text() -> None:
    data = {
        "status": "COMPLETED",
        "attachments": [
            {
                **table_attachment([("driver", "STRING"), ("wins", "LONG")], [["Hamilton", 103], ["Schumacher", 91]]),
                "text": {"content": "Hamilton leads."},
            }
        ],
    }

    decoded = decode_message(data)

    assert isinstance(decoded, CompletedMessage)
    attachment = decoded.attachments[0]
    assert attachment.query_text == "SELECT 1"
    assert attachment.text == "Hamilton leads."
    assert attachment.table is not None
    assert [c.name for c in attachment.table.columns] == ["driver", "wins"]
    assert attachment.table.columns[1].type is ColumnType.LONG
    assert attachment.table.rows == [["Hamilton", 103], ["Schumacher", 91]]
    assert attachment.table.row_count == 2


def test_completed_message_with_malformed_attachments_degrades() -> None:
    """Garbage sub-fields decode to empty values instead of raising."""
    data = {
        "status": "COMPLETED",
        "attachments": [
            "not-a-dict",
            {"query": {"query_result": {"data_array": "nope", "schema": {"columns": "nope"}}}},
            {"text": {"content": "   "}},
        ],
    }

    decoded = decode_message(data)

    assert isinstance(decoded, CompletedMessage)
    assert all(a.text is None for a in decoded.attachments)
    table = decoded.attachments[1].table
    assert table is not None
    assert table.rows == []
    assert table.columns == []


def test_type_name_and_parameterised_types_are_parsed() -> None:
    assert ColumnType.parse("DECIMAL(10,2)") is ColumnType.DECIMAL
    assert ColumnType.parse("int") is ColumnType.INT
    assert ColumnType.parse("INTERVAL") is ColumnType.UNKNOWN
    assert ColumnType.parse(None) is ColumnType.UNKNOWN

    decoded = decode_message(
        {
            "status": "COMPLETED",
            "attachments": [
                {
                    "query": {
                        "query_result": {
                            "data_array": [["1"]],
                            "schema": {"columns": [{"name": "n", "type_name": "DOUBLE"}]},
                        }
                    }
                }
            ],
        }
    )
    assert isinstance(decoded, CompletedMessage)
    assert decoded.attachments[0].table.columns[0].type is ColumnType.DOUBLE


def test_failed_message_prefers_structured_error() -> None:
    decoded = decode_message({"status": "FAILED", "error": {"error": "Warehouse stopped"}})

    assert isinstance(decoded, FailedMessage)
    assert decoded.detail == "Warehouse stopped"


def test_failed_message_detail_fallbacks() -> None:
    assert extract_error_detail({"error": "plain failure"}) == "plain failure"
    assert extract_error_detail({"attachments": [{"text": {"content": "I could not find that table."}}]}) == (
        "I could not find that table."
    )
    assert extract_error_detail({}) == "Query failed"
    assert "code" in extract_error_detail({"error": {"code": 7}})


def test_cancelled_message_is_terminal_failure() -> None:
    decoded = decode_message({"status": "CANCELLED"})

    assert isinstance(decoded, FailedMessage)
    assert decoded.status == "CANCELLED"
