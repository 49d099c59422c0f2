"""Export package for turning ChatGPT conversations into Markdown archives.

Package Structure:
- canvas_state: Canvas document buffers and announced edits for one run
- asset_resolver: Resolves image asset pointers into downloadable files
- traverser: Walks the conversation tree and classifies messages into blocks
- markdown_renderer: Assembles blocks into the final Markdown document
- export_pipeline: Orchestrates one export into a document plus asset list
- asset_writer: Persists the asset list to an output directory

Configuration Referenced:
- export.*: Rendering flags, filename prefix, pending scope
- export.output_directory: Where AssetWriter saves files
"""

from .asset_resolver import AssetResolver, sanitize_filename
from .asset_writer import AssetWriter
from .canvas_state import CanvasStateMachine
from .export_pipeline import ExportPipeline
from .markdown_renderer import MarkdownRenderer, format_local_datetime
from .traverser import ConversationTraverser, TraversalResult

__all__ = [
    'AssetResolver',
    'AssetWriter',
    'CanvasStateMachine',
    'ConversationTraverser',
    'ExportPipeline',
    'MarkdownRenderer',
    'TraversalResult',
    'format_local_datetime',
    'sanitize_filename'
]
