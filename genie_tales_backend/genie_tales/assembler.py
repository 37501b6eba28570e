import os, logging
from typing import Optional

from . import media
from .errors import AssemblyError
from .models import AssemblyPolicy, PipelineConfig, RunWorkspace

logger = logging.getLogger(__name__)


class PageClipAssembler:
    """Renders one page (still image + narration) into ``clips/page-{n}.mp4``.

    Under ``strict`` a page must have both an image and audio. Under
    ``best-effort`` a missing image becomes a black frame and missing audio
    becomes a silent clip of ``silent_clip_duration_s`` seconds.
    """

    def __init__(self, workspace: RunWorkspace, config: Optional[PipelineConfig] = None):
        self.workspace = workspace
        self.config = config or PipelineConfig()

    def _check_inputs(self, image_path: Optional[str], audio_path: Optional[str], page_number: int):
        if not image_path and not audio_path:
            raise AssemblyError("page has neither an illustration nor narration", page_number)
        if self.config.policy == AssemblyPolicy.STRICT:
            if not audio_path:
                raise AssemblyError("narration audio is required under the strict policy", page_number)
            if not image_path:
                raise AssemblyError("illustration is required under the strict policy", page_number)

    async def assemble_clip(self, image_path: Optional[str], audio_path: Optional[str], page_number: int) -> str:
        self._check_inputs(image_path, audio_path, page_number)
        out_path = self.workspace.clip_path(page_number)
        os.makedirs(os.path.dirname(out_path), exist_ok=True)

        duration = None if audio_path else self.config.silent_clip_duration_s
        if duration is not None:
            logger.warning(f"Page {page_number} has no narration, rendering {duration:g}s of silence")
        cmd = media.build_clip_cmd(
            out_path,
            image_path=image_path,
            audio_path=audio_path,
            width=self.config.video_width,
            height=self.config.video_height,
            fps=self.config.fps,
            duration=duration,
            ffmpeg_bin=self.config.ffmpeg_bin,
        )
        logger.info(f"Generating video for page {page_number} with {image_path} and {audio_path}")
        await media.run_ffmpeg(cmd, timeout=self.config.ffmpeg_timeout_s, page_number=page_number)

        if not os.path.exists(out_path):
            raise AssemblyError(f"transcoder reported success but {out_path} is missing", page_number)
        logger.info(f"Clip created for page {page_number} at {out_path}")
        return out_path
