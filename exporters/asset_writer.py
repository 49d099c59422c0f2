"""Persists exported assets to the local filesystem."""

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tqdm import tqdm

from logger import ProgressTracker
from models import AssetFile

CompletionCallback = Callable[[AssetFile, bool, Optional[str]], None]


class AssetWriter:
    """
    Writes asset files into an output directory.

    Each file gets exactly one write attempt. The outcome is reported to a
    completion callback and logged; failures never stop the remaining files.
    """

    def __init__(
        self,
        output_dir: Path,
        show_progress: bool = True,
        on_complete: Optional[CompletionCallback] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the writer.

        Args:
            output_dir: Directory receiving the files
            show_progress: Show a progress bar on interactive terminals
            on_complete: Called with (asset, success, error) after each write
            logger: Logger instance
        """
        self.output_dir = Path(output_dir)
        self.show_progress = show_progress
        self.logger = logger or logging.getLogger('chatgpt_markdown_exporter.exporters.asset_writer')
        self.on_complete = on_complete or self._log_completion
        self.written_paths: List[Path] = []

        self.stats = {
            'written': 0,
            'failed': 0,
            'total_size_bytes': 0
        }

    def write(self, asset: AssetFile) -> bool:
        """
        Write one asset.

        Returns:
            True on success, False on failure
        """
        target = self.output_dir / asset.filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(asset.payload)
        except OSError as e:
            self.stats['failed'] += 1
            self.on_complete(asset, False, str(e))
            return False

        self.written_paths.append(target)
        self.stats['written'] += 1
        self.stats['total_size_bytes'] += len(asset.payload)
        self.on_complete(asset, True, None)
        return True

    def write_all(self, assets: List[AssetFile]) -> Dict[str, Any]:
        """Write every asset in order and return statistics."""
        self.logger.info(f"Writing {len(assets)} file(s) to {self.output_dir}")

        assets_iter = assets
        if self._should_show_progress():
            assets_iter = tqdm(assets, desc="Saving files", leave=False)

        with ProgressTracker(total_items=len(assets), item_type='files') as tracker:
            for asset in assets_iter:
                tracker.increment(success=self.write(asset))

        return self.get_stats()

    def _log_completion(self, asset: AssetFile, success: bool, error: Optional[str]) -> None:
        if success:
            self.logger.debug(f"Saved {asset.filename} ({len(asset.payload)} bytes, {asset.mime_type})")
        else:
            self.logger.error(f"Failed to save {asset.filename}: {error}")

    def _should_show_progress(self) -> bool:
        """Check if progress bars should be displayed."""
        return self.show_progress and sys.stdout.isatty()

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()
