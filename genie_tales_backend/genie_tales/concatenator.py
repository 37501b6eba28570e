"""
Joins per-page clips into the final video with ffmpeg's concat demuxer.

The manifest is always ordered by page number, never by the order in which
clips were produced.
"""
import os, asyncio, logging
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from . import media
from .errors import AssemblyError, ManifestError
from .models import PageClip, PipelineConfig, RunWorkspace

logger = logging.getLogger(__name__)


def validate_page_numbers(page_numbers: Iterable[int], expected_count: Optional[int] = None) -> List[int]:
    """Check that page numbers are unique and exactly 1..N; return them sorted."""
    numbers = list(page_numbers)
    if not numbers:
        raise ManifestError("no pages to assemble")

    duplicates = sorted(n for n, count in Counter(numbers).items() if count > 1)
    if duplicates:
        raise ManifestError(f"duplicate page numbers: {duplicates}")

    expected = len(numbers) if expected_count is None else expected_count
    present = set(numbers)
    missing = sorted(set(range(1, expected + 1)) - present)
    unexpected = sorted(n for n in present if n < 1 or n > expected)
    if missing or unexpected:
        raise ManifestError(
            f"page numbers must be contiguous from 1 to {expected}; "
            f"missing={missing} unexpected={unexpected}"
        )
    return sorted(numbers)


class ConcatManifest:
    def __init__(self, clips: Sequence[PageClip], expected_count: Optional[int] = None):
        validate_page_numbers((clip.page_number for clip in clips), expected_count)
        self.clips: List[PageClip] = sorted(clips, key=lambda clip: clip.page_number)

    @property
    def page_numbers(self) -> List[int]:
        return [clip.page_number for clip in self.clips]

    @property
    def paths(self) -> List[str]:
        return [os.path.abspath(clip.path) for clip in self.clips]

    def render(self) -> str:
        return "".join(f"file {media.quote_concat_path(path)}\n" for path in self.paths)

    def write(self, path: str) -> str:
        media.write_text(path, self.render())
        logger.info(f"Wrote concat manifest with {len(self.clips)} clips to {path}")
        return path


class SequenceConcatenator:
    def __init__(self, workspace: RunWorkspace, config: Optional[PipelineConfig] = None):
        self.workspace = workspace
        self.config = config or PipelineConfig()

    def build_manifest(self, clips: Sequence[PageClip], expected_count: Optional[int] = None) -> ConcatManifest:
        manifest = ConcatManifest(clips, expected_count)
        manifest.write(self.workspace.manifest_path)
        return manifest

    async def concatenate(
        self,
        clips: Sequence[PageClip],
        destination: str,
        expected_count: Optional[int] = None,
    ) -> str:
        self.build_manifest(clips, expected_count)
        return await self.concatenate_manifest(destination)

    async def concatenate_manifest(self, destination: str) -> str:
        """Stream-copy the clips listed in the workspace manifest into ``destination``."""
        os.makedirs(os.path.dirname(os.path.abspath(destination)), exist_ok=True)
        # ffmpeg would otherwise ask before overwriting
        if media.remove_file(destination):
            logger.info(f"Removed existing {destination}")

        cmd = media.build_concat_cmd(self.workspace.manifest_path, destination, self.config.ffmpeg_bin)
        try:
            await media.run_ffmpeg(cmd, timeout=self.config.ffmpeg_timeout_s)
        except (AssemblyError, asyncio.CancelledError):
            media.remove_file(destination)
            raise

        if not os.path.exists(destination):
            raise AssemblyError(f"transcoder reported success but {destination} is missing")
        logger.info(f"Video created: {destination}")
        return destination
