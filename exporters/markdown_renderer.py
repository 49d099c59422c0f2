"""Markdown rendering of traversed conversation blocks."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from dateutil.parser import isoparse

from models import BlockFormat, ExportOptions, RenderableBlock, Timestamp

logger = logging.getLogger('chatgpt_markdown_exporter.exporters.markdown_renderer')


def to_datetime(value: Optional[Timestamp]) -> Optional[datetime]:
    """
    Convert epoch seconds or an ISO 8601 string to a local datetime.

    Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value)
        if isinstance(value, str) and value.strip():
            try:
                return datetime.fromtimestamp(float(value))
            except ValueError:
                parsed = isoparse(value.strip())
                return parsed.astimezone() if parsed.tzinfo else parsed
    except (ValueError, OverflowError, OSError) as e:
        logger.debug(f"Could not parse timestamp {value!r}: {e}")
    return None


def format_local_datetime(value: Optional[Timestamp], fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format a timestamp in local time, or return '' when absent."""
    dt = to_datetime(value)
    return dt.strftime(fmt) if dt else ''


class MarkdownRenderer:
    """Assembles the final Markdown document from renderable blocks."""

    def __init__(self, options: Optional[ExportOptions] = None):
        self.options = options or ExportOptions()

    def render(
        self,
        blocks: Iterable[RenderableBlock],
        title: Optional[str] = None,
        create_time: Optional[Timestamp] = None,
        update_time: Optional[Timestamp] = None
    ) -> str:
        """
        Render the document.

        Args:
            blocks: Ordered renderable blocks
            title: Conversation title (placeholder used when blank)
            create_time: Conversation creation timestamp
            update_time: Conversation last-update timestamp

        Returns:
            Markdown text
        """
        lines = self._render_header(title, create_time, update_time)

        count = 0
        for block in blocks:
            lines.extend(self._render_block(block))
            count += 1

        logger.debug(f"Rendered {count} blocks into {len(lines)} lines")
        return "\n".join(lines)

    def _render_header(
        self,
        title: Optional[str],
        create_time: Optional[Timestamp],
        update_time: Optional[Timestamp]
    ) -> List[str]:
        doc_title = title.strip() if title and title.strip() else self.options.untitled_placeholder
        lines = [f"# {doc_title}"]

        time_texts = []
        created = format_local_datetime(create_time, self.options.timestamp_format)
        updated = format_local_datetime(update_time, self.options.timestamp_format)
        if created:
            time_texts.append(f"created: {created}")
        if updated:
            time_texts.append(f"updated: {updated}")

        if time_texts:
            lines.append(" / ".join(time_texts))
            lines.append("")

        return lines

    def _render_block(self, block: RenderableBlock) -> List[str]:
        lines = [f"### {block.label}"]

        if self.options.show_timestamps:
            time_string = format_local_datetime(block.timestamp, self.options.timestamp_format)
            if time_string:
                lines.append(f"({time_string})\n")

        body_lines = block.body.split("\n")
        if block.format is BlockFormat.FENCED:
            lines.append("```")
            lines.extend(body_lines)
            lines.append("```")
        elif block.format is BlockFormat.QUOTED:
            lines.extend(f"> {line}" if line else ">" for line in body_lines)
        else:
            lines.extend(body_lines)

        lines.append("\n---\n")
        return lines
