"""Data models for the ChatGPT conversation to Markdown export pipeline."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger('chatgpt_markdown_exporter.models')

Timestamp = Union[int, float, str]


class ExportError(Exception):
    """Base exception for failures that abort an export."""
    pass


class MissingMappingError(ExportError):
    """Raised when a conversation record carries no node mapping."""
    pass


class ContentKind(Enum):
    """Shape of a message's content, resolved once at parse time."""
    TEXT_PARTS = "text_parts"
    TEXT = "text"
    CODE = "code"
    MULTIMODAL = "multimodal"


class BlockFormat(Enum):
    """How a renderable block's body is laid out."""
    FENCED = "fenced"
    PLAIN = "plain"
    QUOTED = "quoted"


class PendingScope(Enum):
    """How announced canvas edits are matched to apply signals."""
    SHARED = "shared"
    PER_DOCUMENT = "per_document"


@dataclass
class ImagePart:
    """An image reference inside multimodal content."""

    asset_pointer: str
    prompt: Optional[str] = None


@dataclass
class MessageContent:
    """Tagged content variant of a message."""

    kind: ContentKind
    text: Optional[str] = None
    parts: List[str] = field(default_factory=list)
    images: List[ImagePart] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MessageContent':
        """Classify raw content by content_type and the fields present."""
        data = data or {}
        content_type = data.get('content_type')
        text = data.get('text') if isinstance(data.get('text'), str) else None
        raw_parts = data.get('parts') if isinstance(data.get('parts'), list) else []
        string_parts = [part for part in raw_parts if isinstance(part, str)]

        if content_type == 'code' and text is not None:
            return cls(kind=ContentKind.CODE, text=text)

        if content_type == 'multimodal_text' and isinstance(data.get('parts'), list):
            images = []
            for part in raw_parts:
                if not isinstance(part, dict):
                    continue
                if part.get('content_type') != 'image_asset_pointer' or not part.get('asset_pointer'):
                    continue
                dalle = (part.get('metadata') or {}).get('dalle') or {}
                prompt = dalle.get('prompt') if isinstance(dalle.get('prompt'), str) else None
                images.append(ImagePart(asset_pointer=part['asset_pointer'], prompt=prompt))
            return cls(kind=ContentKind.MULTIMODAL, parts=string_parts, images=images)

        if text is not None:
            return cls(kind=ContentKind.TEXT, text=text)

        return cls(kind=ContentKind.TEXT_PARTS, parts=string_parts)

    def plain_text(self) -> str:
        """Direct text if present, else string parts joined by newlines."""
        if self.text is not None:
            return self.text
        return "\n".join(self.parts)


@dataclass
class Message:
    """A single authored message attached to a node."""

    role: str
    content: MessageContent
    create_time: Optional[Timestamp] = None
    canvas_document_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Build a message from the raw backend shape."""
        author = data.get('author') or {}
        metadata = data.get('metadata') or {}
        canvas = metadata.get('canvas') or {}
        return cls(
            role=author.get('role') or 'unknown',
            content=MessageContent.from_dict(data.get('content')),
            create_time=data.get('create_time'),
            canvas_document_id=canvas.get('textdoc_id') or None
        )


@dataclass
class Node:
    """One entry of the conversation tree."""

    id: str
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    message: Optional[Message] = None

    @classmethod
    def from_dict(cls, node_id: str, data: Dict[str, Any]) -> 'Node':
        """Build a node; the mapping key wins over any embedded id."""
        data = data or {}
        message_data = data.get('message')
        return cls(
            id=node_id,
            parent=data.get('parent') or None,
            children=list(data.get('children') or []),
            message=Message.from_dict(message_data) if message_data else None
        )


@dataclass
class ConversationRecord:
    """Immutable conversation input: metadata plus the node arena."""

    mapping: Dict[str, Node]
    title: Optional[str] = None
    create_time: Optional[Timestamp] = None
    update_time: Optional[Timestamp] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationRecord':
        """
        Parse a raw conversation record.

        Raises:
            MissingMappingError: If the record has no node mapping
        """
        mapping = data.get('mapping') if isinstance(data, dict) else None
        if not isinstance(mapping, dict):
            raise MissingMappingError("Conversation data has no node mapping")

        nodes = {node_id: Node.from_dict(node_id, node_data) for node_id, node_data in mapping.items()}
        return cls(
            mapping=nodes,
            title=data.get('title'),
            create_time=data.get('create_time'),
            update_time=data.get('update_time'),
            conversation_id=data.get('conversation_id') or data.get('id')
        )

    def find_root_id(self) -> Optional[str]:
        """
        Return the first node without a parent, or None for an empty mapping.

        Falls back to the first node in mapping order when every node has a
        parent. That pick is stable for a given input but carries no meaning.
        """
        for node_id, node in self.mapping.items():
            if not node.parent:
                return node_id

        if not self.mapping:
            return None

        fallback = next(iter(self.mapping))
        logger.warning(
            f"No root node found among {len(self.mapping)} nodes; "
            f"falling back to arbitrary node '{fallback}'"
        )
        return fallback


@dataclass
class PatchOperation:
    """A regular-expression search/replace step for a canvas buffer."""

    pattern: str = ".*"
    replacement: str = ""
    multiple: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatchOperation':
        """Numbers are stringified; other non-string values are kept and rejected when applied."""
        return cls(
            pattern=_patch_field(data.get('pattern'), ".*"),
            replacement=_patch_field(data.get('replacement'), ""),
            multiple=bool(data.get('multiple', False))
        )


def _patch_field(value: Any, default: str) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


@dataclass
class PendingCanvasUpdate:
    """An announced canvas edit awaiting the next apply signal."""

    full_text: Optional[str] = None
    text: Optional[str] = None
    updates: Optional[List[PatchOperation]] = None
    document_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingCanvasUpdate':
        """Build from a parsed code payload (create or update textdoc)."""
        updates = data.get('updates')
        document_id = data.get('textdoc_id') or data.get('id')
        return cls(
            full_text=data['content'] if isinstance(data.get('content'), str) else None,
            text=data['text'] if isinstance(data.get('text'), str) else None,
            updates=[PatchOperation.from_dict(u) for u in updates if isinstance(u, dict)]
            if isinstance(updates, list) else None,
            document_id=document_id if isinstance(document_id, str) else None
        )

    def is_empty(self) -> bool:
        return self.full_text is None and self.text is None and self.updates is None


@dataclass
class CanvasDocument:
    """A named canvas text buffer."""

    id: str
    text: str = ""


@dataclass
class RenderableBlock:
    """One unit of output prior to Markdown assembly."""

    role: str
    body: str
    timestamp: Optional[Timestamp] = None
    format: BlockFormat = field(init=False, default=BlockFormat.PLAIN)

    def __post_init__(self) -> None:
        """Derive the format from the role."""
        self.format = BlockFormat.FENCED if self.role == 'user' else BlockFormat.PLAIN

    @property
    def label(self) -> str:
        if self.role == 'user':
            return 'USER'
        if self.role == 'assistant':
            return 'ASSISTANT'
        return f"({self.role})".upper()


@dataclass
class ImageReference:
    """A resolved image asset."""

    asset_pointer: str
    filename: str
    payload: bytes
    mime_type: str
    prompt: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass
class AssetFile:
    """A file to persist: Markdown document or image."""

    filename: str
    payload: bytes
    mime_type: str

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without the payload."""
        return {
            'filename': self.filename,
            'mime_type': self.mime_type,
            'size': len(self.payload)
        }


@dataclass
class ExportOptions:
    """Rendering configuration for one export."""

    all_roles: bool = False
    show_timestamps: bool = False
    show_image_prompts: bool = False
    pending_scope: PendingScope = PendingScope.SHARED
    filename_prefix: str = "chatgpt"
    image_max_width: int = 360
    untitled_placeholder: str = "Untitled"
    timestamp_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ExportOptions':
        """Build options from the 'export' configuration section."""
        export_config = config.get('export', {}) or {}
        defaults = cls()
        return cls(
            all_roles=bool(export_config.get('all_roles', defaults.all_roles)),
            show_timestamps=bool(export_config.get('show_timestamps', defaults.show_timestamps)),
            show_image_prompts=bool(export_config.get('show_image_prompts', defaults.show_image_prompts)),
            pending_scope=PendingScope(export_config.get('pending_scope', defaults.pending_scope.value)),
            filename_prefix=export_config.get('filename_prefix', defaults.filename_prefix),
            image_max_width=export_config.get('image_max_width', defaults.image_max_width),
            untitled_placeholder=export_config.get('untitled_placeholder', defaults.untitled_placeholder),
            timestamp_format=export_config.get('timestamp_format', defaults.timestamp_format)
        )


__all__ = [
    'AssetFile',
    'BlockFormat',
    'CanvasDocument',
    'ContentKind',
    'ConversationRecord',
    'ExportError',
    'ExportOptions',
    'ImagePart',
    'ImageReference',
    'Message',
    'MessageContent',
    'MissingMappingError',
    'Node',
    'PatchOperation',
    'PendingCanvasUpdate',
    'PendingScope',
    'RenderableBlock'
]
