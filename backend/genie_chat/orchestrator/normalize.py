from __future__ import annotations

import structlog

from genie_chat.orchestrator.models import OutcomeStatus, QueryOutcome
from genie_chat.orchestrator.payloads import Attachment, CompletedMessage
from genie_chat.orchestrator.rendering import NO_DATA_NOTICE, render_query, render_table, render_text

logger = structlog.get_logger()


def _pick_query_attachment(attachments: list[Attachment]) -> Attachment | None:
    with_rows = next((a for a in attachments if a.table is not None and a.table.rows), None)
    if with_rows is not None:
        return with_rows
    return next((a for a in attachments if a.query_text or a.table is not None), None)


def normalize_completed(message: CompletedMessage) -> tuple[QueryOutcome, list[str]]:
    """Turn a COMPLETED message into an outcome and its display fragments.

    Rules, each independent:

    1. A table with at least one row gives ``completed-with-data``.
    2. Narrative text is appended whether or not a table was present.
    3. Generated query text is appended as its own fragment.
    4. With no rows and no narrative the outcome is ``completed-empty`` and
       a "no data" notice is appended.

    Args:
        message: The decoded COMPLETED message.

    Returns:
        Tuple of (outcome, fragments). Fragments are escaped HTML ready to be
        stored as assistant turns, in display order.
    """
    query_attachment = _pick_query_attachment(message.attachments)
    narrative_parts = [a.text for a in message.attachments if a.text]
    narrative = "\n\n".join(narrative_parts) if narrative_parts else None
    table = query_attachment.table if query_attachment else None
    query_text = query_attachment.query_text if query_attachment else None

    fragments: list[str] = []
    outcome = QueryOutcome(
        status=OutcomeStatus.COMPLETED_EMPTY,
        narrative=narrative,
        generated_query_text=query_text,
    )

    if table is not None and table.rows:
        outcome.status = OutcomeStatus.COMPLETED_WITH_DATA
        outcome.rows = table.rows
        outcome.columns = table.columns
        outcome.truncated = table.truncated
        outcome.row_count = table.row_count
        fragments.append(render_table(table.columns, table.rows, table.row_count, table.truncated))
    elif narrative:
        outcome.status = OutcomeStatus.COMPLETED_NARRATIVE_ONLY

    if narrative:
        fragments.append(render_text(narrative))

    if query_text:
        fragments.append(render_query(query_text))

    if outcome.status is OutcomeStatus.COMPLETED_EMPTY:
        fragments.append(NO_DATA_NOTICE)

    logger.info(
        "genie_result_normalized",
        status=outcome.status.value,
        attachment_count=len(message.attachments),
        row_count=len(outcome.rows or []),
        has_narrative=narrative is not None,
        has_query=query_text is not None,
    )
    return outcome, fragments
