"""Depth-first traversal of the conversation tree into renderable blocks."""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from models import (
    ContentKind,
    ConversationRecord,
    ExportOptions,
    ImageReference,
    Message,
    PendingCanvasUpdate,
    RenderableBlock
)
from .asset_resolver import AssetResolver
from .canvas_state import CanvasStateMachine

RENDERED_ROLES = ('user', 'assistant')


@dataclass
class TraversalResult:
    """Ordered output of one traversal run."""

    blocks: List[RenderableBlock] = field(default_factory=list)
    images: List[ImageReference] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)


class ConversationTraverser:
    """
    Walks a conversation tree in pre-order and classifies each message.

    Classification order per message:
    1. assistant code payload that parses as a JSON object: canvas edit announcement
    2. tool message with a canvas document id: canvas apply signal
    3. multimodal content: image block
    4. anything else: plain text block, subject to role filtering
    """

    def __init__(
        self,
        options: ExportOptions,
        asset_resolver: Optional[AssetResolver] = None,
        conversation_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.options = options
        self.asset_resolver = asset_resolver or AssetResolver()
        self.conversation_id = conversation_id
        self.logger = logger or logging.getLogger('chatgpt_markdown_exporter.exporters.traverser')

    def traverse(self, record: ConversationRecord) -> TraversalResult:
        """
        Traverse the record from its root.

        Canvas state is created here and dropped on return, so repeated calls
        never see each other's buffers or pending edits.
        """
        canvas = CanvasStateMachine(pending_scope=self.options.pending_scope)
        result = TraversalResult()
        visited: Set[str] = set()

        root_id = record.find_root_id()
        if root_id is None:
            self.logger.warning("Conversation has no nodes; nothing to traverse")
            return result
        self.logger.debug(f"Starting traversal at root '{root_id}'")

        stack = [root_id]
        while stack:
            node_id = stack.pop()
            node = record.mapping.get(node_id)
            if node is None:
                self.logger.debug(f"Skipping unknown node '{node_id}'")
                continue
            if node_id in visited:
                self.logger.warning(f"Node '{node_id}' reached twice - skipping to avoid a cycle")
                continue

            visited.add(node_id)
            result.visited.append(node_id)

            if node.message is not None:
                self._visit_message(node.message, canvas, result)

            stack.extend(reversed(node.children))

        self.logger.info(
            f"Traversed {len(visited)}/{len(record.mapping)} nodes: "
            f"{len(result.blocks)} blocks, {len(result.images)} images"
        )
        if canvas.documents:
            self.logger.debug(f"Canvas stats: {canvas.get_stats()}")
        return result

    def _visit_message(self, message: Message, canvas: CanvasStateMachine, result: TraversalResult) -> None:
        content = message.content

        if message.role == 'assistant' and content.kind is ContentKind.CODE:
            pending = self._parse_canvas_payload(content.text)
            if pending is not None:
                canvas.announce(pending)
                return
            canvas.discard_pending()
            self._emit(result, 'assistant', content.text.strip(), message.create_time)
            return

        if message.role == 'tool' and message.canvas_document_id:
            if not canvas.has_pending(message.canvas_document_id):
                self.logger.debug(f"Canvas apply for '{message.canvas_document_id}' with nothing pending")
                return
            text = canvas.apply_signal(message.canvas_document_id)
            self._emit(result, 'assistant', text, None)
            return

        if content.kind is ContentKind.MULTIMODAL:
            body = self._render_images(content.images, result)
            self._emit(result, 'assistant', body.rstrip(), message.create_time)
            return

        if not self.options.all_roles and message.role not in RENDERED_ROLES:
            return
        self._emit(result, message.role, content.plain_text().strip(), message.create_time)

    def _parse_canvas_payload(self, text: Optional[str]) -> Optional[PendingCanvasUpdate]:
        """Parse a code payload as a canvas edit, or None if it is not one."""
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Code payload is not valid JSON, keeping it as text: {e}")
            return None

        if not isinstance(data, dict):
            self.logger.warning("Code payload is not a JSON object, keeping it as text")
            return None
        return PendingCanvasUpdate.from_dict(data)

    def _render_images(self, images, result: TraversalResult) -> str:
        """Resolve image parts in order and build their combined markup."""
        markup = ""
        for image in images:
            reference = self.asset_resolver.resolve(image.asset_pointer, self.conversation_id, prompt=image.prompt)
            if reference is None:
                continue

            if all(existing is not reference for existing in result.images):
                result.images.append(reference)

            markup += (
                f'<img src="{reference.filename}" alt="image" '
                f'style="max-width: {self.options.image_max_width}px;" />\n\n'
            )
            if self.options.show_image_prompts and reference.prompt and reference.prompt.strip():
                markup += f"**Prompt**: {reference.prompt.strip()}\n\n"
        return markup

    @staticmethod
    def _emit(result: TraversalResult, role: str, body: Optional[str], timestamp) -> None:
        """Append a block unless its body is blank after trimming."""
        if not body or not body.strip():
            return
        result.blocks.append(RenderableBlock(role=role, body=body, timestamp=timestamp))
