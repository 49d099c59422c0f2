"""Export pipeline: conversation record in, Markdown document and assets out."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from models import AssetFile, ConversationRecord, ExportOptions, Timestamp
from .asset_resolver import AssetResolver, sanitize_filename
from .markdown_renderer import MarkdownRenderer, to_datetime
from .traverser import ConversationTraverser

MAX_TITLE_LENGTH = 60
MARKDOWN_MIME_TYPE = 'text/markdown'


def build_filename_prefix(create_time: Optional[Timestamp], token: str = 'chatgpt') -> str:
    """Build the export-wide prefix '<token>_YYYYMMDDhhmmss_' (local time)."""
    created = to_datetime(create_time) or datetime.now()
    return f"{token}_{created.strftime('%Y%m%d%H%M%S')}_"


def build_document_filename(title: Optional[str], prefix: str, conversation_id: Optional[str]) -> str:
    """
    Derive the Markdown filename from the title or conversation id.

    Titles are sanitized and capped at 60 characters followed by '...'.
    """
    if title and title.strip():
        safe_title = sanitize_filename(title.strip())
        if len(safe_title) > MAX_TITLE_LENGTH:
            safe_title = safe_title[:MAX_TITLE_LENGTH] + "..."
        return f"{prefix}{safe_title}.md"

    return sanitize_filename(f"{prefix}conversation_{conversation_id or 'unknown'}.md")


class ExportPipeline:
    """
    Orchestrates one conversation export.

    This pipeline:
    1. Parses the raw record (missing mapping is fatal)
    2. Computes the filename prefix and document filename
    3. Traverses the tree, resolving canvas edits and images
    4. Renders Markdown
    5. Packages the document and images as an ordered asset list
    """

    def __init__(self, client=None, logger: Optional[logging.Logger] = None):
        """
        Initialize the pipeline.

        Args:
            client: ChatGPTClient used for image resolution (None skips images)
            logger: Logger instance
        """
        self.client = client
        self.logger = logger or logging.getLogger('chatgpt_markdown_exporter.exporters.export_pipeline')
        self.last_stats: Dict[str, Any] = {}

    def export(
        self,
        record: Union[ConversationRecord, Dict[str, Any]],
        options: Optional[ExportOptions] = None,
        conversation_id: Optional[str] = None
    ) -> Tuple[str, List[AssetFile]]:
        """
        Export a conversation.

        Args:
            record: Parsed record or raw conversation JSON
            options: Rendering options
            conversation_id: Identifier used for attachment lookups and fallback naming

        Returns:
            Tuple of (markdown_text, asset_files); the Markdown file comes first

        Raises:
            MissingMappingError: If the record has no node mapping
        """
        options = options or ExportOptions()
        if not isinstance(record, ConversationRecord):
            record = ConversationRecord.from_dict(record)

        conversation_id = conversation_id or record.conversation_id
        prefix = build_filename_prefix(record.create_time, options.filename_prefix)
        document_filename = build_document_filename(record.title, prefix, conversation_id)

        self.logger.info(f"Exporting conversation '{record.title or conversation_id}' as {document_filename}")

        resolver = AssetResolver(
            client=self.client,
            filename_prefix=prefix,
            reserved_filenames={document_filename}
        )
        traverser = ConversationTraverser(
            options=options,
            asset_resolver=resolver,
            conversation_id=conversation_id
        )
        result = traverser.traverse(record)

        renderer = MarkdownRenderer(options)
        markdown = renderer.render(
            result.blocks,
            title=record.title,
            create_time=record.create_time,
            update_time=record.update_time
        )

        assets = [AssetFile(filename=document_filename, payload=markdown.encode('utf-8'), mime_type=MARKDOWN_MIME_TYPE)]
        for image in result.images:
            assets.append(AssetFile(filename=image.filename, payload=image.payload, mime_type=image.mime_type))

        self.last_stats = {
            'document_filename': document_filename,
            'nodes_visited': len(result.visited),
            'blocks': len(result.blocks),
            'images': resolver.get_stats(),
            'markdown_length': len(markdown)
        }
        self.logger.info(
            f"Export ready: {len(result.blocks)} blocks, {len(result.images)} images, "
            f"{len(markdown)} characters of Markdown"
        )

        return markdown, assets
