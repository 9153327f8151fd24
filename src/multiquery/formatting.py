"""
Plain-text rendering of per-endpoint outcomes.

Two modes are supported:

* table: one block per endpoint, a status line followed by an aligned table;
* CSV: a single ``client_id,<columns>`` header followed by one line per row.

The CSV header is chosen once per :class:`RenderSession`, from the first
successful outcome that has rows. Rows of later outcomes are projected onto
that header by column name, so streaming and batch rendering produce the
same bytes for the same outcomes.
"""
from __future__ import annotations

import dataclasses
import datetime
from typing import Any, Dict, Iterable, List, Optional, TextIO, Union

from multiquery.logger import endpoint_logger, get_logger
from multiquery.schemas import MultiQueryResult, QueryOutcome

logger = get_logger(__name__)

NULL_TEXT = "NULL"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
CSV_ID_COLUMN = "client_id"

_CSV_SPECIAL = (",", '"', "\n", "\r")


@dataclasses.dataclass
class RenderSession:
    """
    Mutable state of one rendering run.

    Attributes:
        headers_written: True once the CSV header line has been emitted.
        header_columns: Result columns chosen for the CSV header.
    """
    headers_written: bool = False
    header_columns: List[str] = dataclasses.field(default_factory=list)


def format_value(value: Any) -> str:
    """Formats a single cell value for display."""
    if value is None:
        return NULL_TEXT
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime.datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)


def escape_csv(text: str) -> str:
    """Quotes a CSV field when it contains a comma, quote or line break."""
    if any(ch in text for ch in _CSV_SPECIAL):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_csv_value(value: Any) -> str:
    return escape_csv(format_value(value))


def _status_line(outcome: QueryOutcome) -> str:
    if outcome.success:
        noun = "row" if outcome.row_count == 1 else "rows"
        return f"[{outcome.endpoint_id}] ✓ {outcome.row_count} {noun} ({outcome.elapsed_ms:.0f}ms)"
    return f"[{outcome.endpoint_id}] ✗ {outcome.error_message}"


def render_table(columns: List[str], rows: List[List[Any]]) -> List[str]:
    """Aligned table lines: header, dash separator, one line per row."""
    if not columns or not rows:
        return []

    formatted = [[format_value(v) for v in row] for row in rows]
    widths = [len(c) for c in columns]
    for row in formatted:
        for i, text in enumerate(row):
            widths[i] = max(widths[i], len(text))

    lines = [" | ".join(c.ljust(w) for c, w in zip(columns, widths))]
    lines.append("-|-".join("-" * w for w in widths))
    for row in formatted:
        lines.append(" | ".join(text.ljust(w) for text, w in zip(row, widths)))
    return lines


def _render_table_block(outcome: QueryOutcome) -> str:
    lines = [_status_line(outcome)]
    if outcome.success:
        lines.extend(render_table(outcome.columns, outcome.rows))
    lines.append("")
    return "\n".join(lines) + "\n"


def _project(outcome: QueryOutcome, header: List[str]) -> List[List[Any]]:
    """
    Rows of ``outcome`` re-ordered to the session header columns.

    Columns are matched by name and occurrence, so the second ``id`` in the
    header takes the second ``id`` of the outcome.
    """
    if outcome.columns == header:
        return outcome.rows

    positions: Dict[str, List[int]] = {}
    for index, name in enumerate(outcome.columns):
        positions.setdefault(name, []).append(index)

    seen: Dict[str, int] = {}
    picks: List[Optional[int]] = []
    for name in header:
        occurrence = seen.get(name, 0)
        seen[name] = occurrence + 1
        candidates = positions.get(name, [])
        picks.append(candidates[occurrence] if occurrence < len(candidates) else None)

    used = {i for i in picks if i is not None}
    extra = [c for i, c in enumerate(outcome.columns) if i not in used]
    if extra:
        endpoint_logger(logger, outcome.endpoint_id).warning(f"columns {extra} are not in the CSV header and are dropped")
    return [[row[i] if i is not None else None for i in picks] for row in outcome.rows]


def _render_csv_block(outcome: QueryOutcome, session: RenderSession) -> str:
    if not outcome.success:
        return ""

    lines = []
    if not session.headers_written and outcome.rows:
        session.header_columns = list(outcome.columns)
        session.headers_written = True
        lines.append(",".join([CSV_ID_COLUMN] + [escape_csv(c) for c in session.header_columns]))

    if not session.headers_written:
        return ""

    endpoint = escape_csv(outcome.endpoint_id)
    for row in _project(outcome, session.header_columns):
        lines.append(",".join([endpoint] + [format_csv_value(v) for v in row]))

    return "".join(line + "\n" for line in lines)


def render_one(outcome: QueryOutcome, csv_output: bool, session: RenderSession) -> str:
    """
    Renders one endpoint's outcome as a single, self-contained block.

    Args:
        outcome: The outcome to render.
        csv_output: CSV mode if True, table mode otherwise.
        session: Render state shared by every call of one run.

    Returns:
        str: The text block, possibly empty (failed outcomes in CSV mode).
    """
    if csv_output:
        return _render_csv_block(outcome, session)
    return _render_table_block(outcome)


def render_batch(outcomes: Union[MultiQueryResult, Iterable[QueryOutcome]], csv_output: bool) -> str:
    """Renders all outcomes with a fresh session. Pure: same input, same output."""
    if isinstance(outcomes, MultiQueryResult):
        outcomes = outcomes.outcomes
    session = RenderSession()
    return "".join(render_one(outcome, csv_output, session) for outcome in outcomes)


class ResultRenderer:
    """
    Streaming renderer owning one RenderSession.

    Not safe for concurrent use; give each concurrent run its own renderer.
    """

    def __init__(self, csv_output: bool = False, session: Optional[RenderSession] = None):
        self.csv_output = csv_output
        self.session = session or RenderSession()

    def render(self, outcome: QueryOutcome) -> str:
        return render_one(outcome, self.csv_output, self.session)

    def write(self, outcome: QueryOutcome, sink: TextIO) -> None:
        """Renders ``outcome`` and writes the whole block to ``sink`` at once."""
        text = self.render(outcome)
        if text:
            sink.write(text)
            sink.flush()
