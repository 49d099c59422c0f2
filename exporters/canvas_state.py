"""Canvas document buffers and the pending-update slot for one export run."""

import logging
import re
from typing import Dict, List, Optional

from models import CanvasDocument, PatchOperation, PendingCanvasUpdate, PendingScope

# JavaScript-only group syntax accepted in canvas patterns
JS_NAMED_GROUP = re.compile(r'(?<!\\)\(\?<(?![=!])([A-Za-z_][A-Za-z0-9_]*)>')
JS_NAMED_BACKREF = re.compile(r'\\k<([A-Za-z_][A-Za-z0-9_]*)>')
JS_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|`|'|\d{1,2}|<[A-Za-z_][A-Za-z0-9_]*>)")


def compile_pattern(pattern: str) -> re.Pattern:
    """
    Compile a canvas patch pattern with dot-matches-newline semantics.

    Raises:
        re.error: If the pattern is malformed
    """
    translated = JS_NAMED_GROUP.sub(r'(?P<\1>', pattern)
    translated = JS_NAMED_BACKREF.sub(r'(?P=\1)', translated)
    return re.compile(_anchor_end_of_input(translated), re.DOTALL)


def _anchor_end_of_input(pattern: str) -> str:
    """Rewrite bare `$` to `\\Z` so it never matches before a trailing newline."""
    out = []
    escaped = in_class = False
    for char in pattern:
        if escaped:
            escaped = False
        elif char == '\\':
            escaped = True
        elif in_class:
            in_class = char != ']'
        elif char == '[':
            in_class = True
        elif char == '$':
            out.append(r'\Z')
            continue
        out.append(char)
    return ''.join(out)


def expand_replacement(replacement: str, match: re.Match) -> str:
    """Expand a `$`-style replacement string against a match."""
    group_count = match.re.groups

    def substitute(token_match: re.Match) -> str:
        token = token_match.group(1)
        if token == '$':
            return '$'
        if token == '&':
            return match.group(0)
        if token == '`':
            return match.string[:match.start()]
        if token == "'":
            return match.string[match.end():]
        if token.startswith('<'):
            name = token[1:-1]
            if name not in match.re.groupindex:
                return token_match.group(0)
            return match.group(name) or ''

        # Two-digit references fall back to one digit plus a literal
        if len(token) == 2 and 0 < int(token) <= group_count:
            return match.group(int(token)) or ''
        if 0 < int(token[0]) <= group_count:
            return (match.group(int(token[0])) or '') + token[1:]
        return token_match.group(0)

    return JS_REPLACEMENT_TOKEN.sub(substitute, replacement)


class CanvasStateMachine:
    """
    Tracks canvas documents and announced edits during a single traversal.

    A new instance must be created for every export run so that no buffer or
    pending edit leaks into the next render.
    """

    UNASSIGNED = None

    def __init__(
        self,
        pending_scope: PendingScope = PendingScope.SHARED,
        logger: Optional[logging.Logger] = None
    ):
        self.pending_scope = pending_scope
        self.logger = logger or logging.getLogger('chatgpt_markdown_exporter.exporters.canvas_state')
        self.documents: Dict[str, CanvasDocument] = {}
        self._pending: Dict[Optional[str], PendingCanvasUpdate] = {}
        self.stats = {
            'announcements': 0,
            'applied': 0,
            'patches_applied': 0,
            'patches_failed': 0
        }

    def get_document(self, document_id: str) -> CanvasDocument:
        """Return the document, creating an empty one on first reference."""
        if document_id not in self.documents:
            self.documents[document_id] = CanvasDocument(id=document_id)
        return self.documents[document_id]

    def get_text(self, document_id: str) -> str:
        document = self.documents.get(document_id)
        return document.text if document else ""

    def announce(self, pending: PendingCanvasUpdate) -> None:
        """Store an announced edit, overwriting any unconsumed one in its slot."""
        key = self._slot_key(pending.document_id)
        if key in self._pending:
            self.logger.debug(f"Overwriting unconsumed canvas update in slot {key!r}")
        self._pending[key] = pending
        self.stats['announcements'] += 1

    def discard_pending(self) -> None:
        """Drop the unassigned pending edit (all edits in shared scope)."""
        if self.pending_scope is PendingScope.SHARED:
            self._pending.clear()
        else:
            self._pending.pop(self.UNASSIGNED, None)

    def has_pending(self, document_id: Optional[str] = None) -> bool:
        if self.pending_scope is PendingScope.SHARED:
            return bool(self._pending)
        return document_id in self._pending or self.UNASSIGNED in self._pending

    def take_pending(self, document_id: str) -> PendingCanvasUpdate:
        """
        Remove and return the edit an apply signal for document_id consumes.

        Returns an empty update when nothing is pending.
        """
        if self.pending_scope is PendingScope.SHARED:
            pending = self._pending.pop(self.UNASSIGNED, None)
        elif document_id in self._pending:
            pending = self._pending.pop(document_id)
        else:
            pending = self._pending.pop(self.UNASSIGNED, None)
        return pending or PendingCanvasUpdate()

    def apply_signal(self, document_id: str) -> str:
        """Consume the pending edit for a document and return its new text."""
        document = self.get_document(document_id)
        pending = self.take_pending(document_id)
        if pending.is_empty():
            self.logger.debug(f"Apply signal for canvas '{document_id}' with nothing pending")
        self.apply_pending(document, pending)
        self.stats['applied'] += 1
        return document.text

    def apply_pending(self, document: CanvasDocument, pending: PendingCanvasUpdate) -> str:
        """
        Apply a pending edit to a document buffer in place.

        Args:
            document: Target canvas document
            pending: Full replacement and/or ordered patch list

        Returns:
            The document's resulting text
        """
        if pending.full_text is not None:
            document.text = pending.full_text
        elif pending.text is not None:
            document.text = pending.text

        if pending.updates:
            document.text = self.apply_updates(document.text, pending.updates, document.id)

        return document.text

    def apply_updates(self, text: str, updates: List[PatchOperation], document_id: str = '') -> str:
        """Apply patch operations in order, each seeing the previous result."""
        current = text
        for index, update in enumerate(updates):
            try:
                regex = compile_pattern(update.pattern)
                current = regex.sub(
                    lambda m, replacement=update.replacement: expand_replacement(replacement, m),
                    current,
                    count=0 if update.multiple else 1
                )
                self.stats['patches_applied'] += 1
            except (re.error, TypeError) as e:
                self.logger.warning(
                    f"Skipping malformed canvas patch #{index + 1} for '{document_id}' "
                    f"(pattern {update.pattern!r}): {e}"
                )
                self.stats['patches_failed'] += 1
        return current

    def _slot_key(self, document_id: Optional[str]) -> Optional[str]:
        if self.pending_scope is PendingScope.SHARED:
            return self.UNASSIGNED
        return document_id or self.UNASSIGNED

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
