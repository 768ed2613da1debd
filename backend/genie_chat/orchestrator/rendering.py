from __future__ import annotations

from html import escape

from genie_chat.orchestrator.models import Cell, Column

NULL_MARKER = "NULL"
NO_DATA_NOTICE = "Genie processed your query but returned no data."


def display_value(cell: Cell) -> str:
    """String shown for a cell; null keeps a visible marker."""
    if cell is None:
        return NULL_MARKER
    if isinstance(cell, bool):
        return "true" if cell else "false"
    return str(cell)


def render_text(text: str) -> str:
    return escape(text)


def render_query(query_text: str) -> str:
    return f'<div class="genie-sql-code"><pre>{escape(query_text)}</pre></div>'


def render_table(
    columns: list[Column],
    rows: list[list[Cell]],
    row_count: int | None = None,
    truncated: bool = False,
) -> str:
    """Render a result set as an HTML table fragment.

    Column names and cell values come from the remote service and are always
    escaped. Cells of numeric columns get the ``numeric`` class; cells
    beyond the schema width are rendered untyped.
    """
    parts = ['<div class="genie-table-wrapper"><table class="genie-results-table">', "<thead><tr>"]
    parts.extend(f"<th>{escape(column.name)}</th>" for column in columns)
    parts.append("</tr></thead><tbody>")

    for row in rows:
        parts.append("<tr>")
        for index, cell in enumerate(row):
            numeric = index < len(columns) and columns[index].type.is_numeric
            class_attr = ' class="numeric"' if numeric else ""
            parts.append(f"<td{class_attr}>{escape(display_value(cell))}</td>")
        parts.append("</tr>")

    parts.append("</tbody></table></div>")

    if truncated:
        total = row_count if row_count is not None else len(rows)
        parts.append(f'<p class="genie-truncated">Showing first {len(rows)} of {total} rows</p>')

    return "".join(parts)
