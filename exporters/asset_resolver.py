"""Asset resolver for turning image asset pointers into downloadable files."""

import logging
import mimetypes
import re
from pathlib import Path
from typing import Any, Dict, Optional, Set
from urllib.parse import parse_qs, urlparse

from models import ImageReference

ASSET_POINTER_PREFIXES = ('file-service://', 'sediment://')
ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
SIGNATURE_PARAM = 'sig'


def sanitize_filename(name: str) -> str:
    """Replace characters illegal in filenames with underscores."""
    return ILLEGAL_FILENAME_CHARS.sub('_', name)


def strip_asset_pointer(pointer: str) -> str:
    """Strip a known scheme prefix from an asset pointer."""
    for prefix in ASSET_POINTER_PREFIXES:
        if pointer.startswith(prefix):
            return pointer[len(prefix):]
    return pointer


def has_signature(url: Optional[str]) -> bool:
    """Check whether a signed download URL carries its signature parameter."""
    if not url:
        return False
    query = parse_qs(urlparse(url).query, keep_blank_values=True)
    return SIGNATURE_PARAM in query


class AssetResolver:
    """
    Resolves image asset pointers for a single export run.

    For each pointer this resolver:
    1. Strips the scheme prefix to get the raw file identifier
    2. Requests attachment metadata (signed download URL and file name)
    3. Skips the asset when the URL is unsigned
    4. Downloads the payload
    5. Builds a prefixed, sanitized filename unique within the export

    Failures never propagate; the asset is skipped and the reason logged.
    """

    def __init__(
        self,
        client=None,
        filename_prefix: str = '',
        reserved_filenames: Optional[Set[str]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the resolver.

        Args:
            client: ChatGPTClient carrying the credential (None disables downloads)
            filename_prefix: Export-wide prefix prepended to every filename
            reserved_filenames: Names already taken in this export
            logger: Logger instance
        """
        self.client = client
        self.filename_prefix = filename_prefix
        self.logger = logger or logging.getLogger('chatgpt_markdown_exporter.exporters.asset_resolver')

        self.image_counter = 1
        self.used_filenames: Set[str] = set(reserved_filenames or ())
        self.resolved_cache: Dict[str, ImageReference] = {}

        self.stats = {
            'total_assets': 0,
            'downloaded': 0,
            'cached': 0,
            'skipped': 0,
            'failed': 0,
            'total_size_bytes': 0
        }

    def resolve(self, pointer: str, conversation_id: Optional[str], prompt: Optional[str] = None) -> Optional[ImageReference]:
        """
        Resolve one asset pointer.

        Args:
            pointer: Asset pointer token (e.g. "file-service://file-abc")
            conversation_id: Conversation the asset belongs to
            prompt: Optional image-generation prompt to carry along

        Returns:
            ImageReference, or None when the asset is skipped
        """
        self.stats['total_assets'] += 1
        file_id = strip_asset_pointer(pointer)

        if file_id in self.resolved_cache:
            self.logger.debug(f"Asset '{file_id}' already resolved in this export")
            self.stats['cached'] += 1
            return self.resolved_cache[file_id]

        if self.client is None:
            self.logger.warning(f"No client configured - skipping image '{file_id}'")
            self.stats['skipped'] += 1
            return None
        if not conversation_id:
            self.logger.warning(f"No conversation id available - skipping image '{file_id}'")
            self.stats['skipped'] += 1
            return None

        try:
            metadata = self.client.get_attachment_metadata(conversation_id, file_id)
            signed_url = metadata.get('download_url')
            if not has_signature(signed_url):
                self.logger.info(
                    f"No '{SIGNATURE_PARAM}' parameter in download URL, skipping image '{file_id}': {signed_url}"
                )
                self.stats['skipped'] += 1
                return None

            self.logger.debug(f"Fetching image '{file_id}' from signed URL")
            payload, response_metadata = self.client.download_file(signed_url, return_metadata=True)
            self.logger.debug(f"Fetched image '{file_id}' with size {len(payload)} bytes")

            filename = self._build_filename(metadata)
            reference = ImageReference(
                asset_pointer=pointer,
                filename=filename,
                payload=payload,
                mime_type=self._guess_mime_type(filename, response_metadata),
                prompt=prompt
            )

        except Exception as e:
            self.logger.error(f"Error resolving image '{file_id}': {e}", exc_info=True)
            self.stats['failed'] += 1
            return None

        self.resolved_cache[file_id] = reference
        self.stats['downloaded'] += 1
        self.stats['total_size_bytes'] += reference.size
        return reference

    def _build_filename(self, metadata: Dict[str, Any]) -> str:
        """Prefix, sanitize and de-duplicate the reported file name."""
        original = metadata.get('file_name')
        if not isinstance(original, str) or not original.strip():
            original = f"image_{self.image_counter}.webp"
        self.image_counter += 1

        filename = sanitize_filename(f"{self.filename_prefix}{original.strip()}")
        return self.reserve_filename(filename)

    def reserve_filename(self, filename: str) -> str:
        """Return filename, or a suffixed variant, not yet used in this export."""
        candidate = filename
        counter = 1
        while candidate in self.used_filenames:
            path = Path(filename)
            candidate = f"{path.stem}_{counter}{path.suffix}"
            counter += 1

        self.used_filenames.add(candidate)
        return candidate

    @staticmethod
    def _guess_mime_type(filename: str, response_metadata: Optional[Dict[str, Any]]) -> str:
        content_type = (response_metadata or {}).get('content_type')
        if content_type:
            return content_type.split(';')[0].strip()
        guessed, _ = mimetypes.guess_type(filename)
        return guessed or 'application/octet-stream'

    def get_stats(self) -> Dict[str, int]:
        """Get asset resolution statistics."""
        return self.stats.copy()
