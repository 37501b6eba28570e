"""
End-to-end story video generation: parameters -> outline -> narrated video.
"""
import os, asyncio, logging
from typing import Callable, Dict, Optional

from .elevenlabs_client import ElevenLabsNarrator
from .errors import GenerationError, StoryVideoError
from .images import get_image_generator
from .llm import get_story_outline
from .models import PageArtifact, PipelineConfig, Story, StoryContent, StoryOutline, StoryParameters, StoryVideo
from .orchestrator import ImageGenerator, Narrator, VideoPipeline
from .settings import IMAGE_PROVIDER, has_all_keys

logger = logging.getLogger(__name__)


def _existing(path: Optional[str]) -> Optional[str]:
    return path if path and os.path.exists(path) else None


def build_story(outline: StoryOutline, params: StoryParameters, artifacts: Dict[int, PageArtifact]) -> Story:
    """Aggregate outline text and materialized artifacts, ordered by page number.

    Paths are only kept while the files exist (they vanish if the workspace was cleaned up).
    """
    contents = []
    for page in sorted(outline.pages, key=lambda p: p.page_number):
        artifact = artifacts.get(page.page_number)
        contents.append(
            StoryContent(
                page_number=page.page_number,
                text=page.text,
                illustration_prompt=page.illustration_prompt,
                image_path=_existing(artifact.image_path) if artifact else None,
                audio_path=_existing(artifact.audio_path) if artifact else None,
            )
        )
    return Story(title=outline.title, parameters=params, contents=contents)


class StoryVideoService:
    def __init__(
        self,
        story_writer: Optional[Callable[[StoryParameters], StoryOutline]] = None,
        image_generator: Optional[ImageGenerator] = None,
        narrator: Optional[Narrator] = None,
        image_provider: str = IMAGE_PROVIDER,
        config: Optional[PipelineConfig] = None,
    ):
        self._uses_live_providers = story_writer is None or image_generator is None or narrator is None
        self._story_writer = story_writer or get_story_outline
        self._image_generator = image_generator
        self._narrator = narrator
        self._image_provider = image_provider
        self.config = config or PipelineConfig()

    async def write_outline(self, params: StoryParameters) -> StoryOutline:
        try:
            return await asyncio.to_thread(self._story_writer, params)
        except StoryVideoError:
            raise
        except Exception as e:
            logger.error(f"Story writer failed: {e}")
            raise GenerationError(f"story writer failed: {type(e).__name__}: {e}") from e

    async def generate(self, params: StoryParameters) -> StoryVideo:
        if self._uses_live_providers:
            has_all_keys()
        outline = await self.write_outline(params)
        image_generator = self._image_generator or get_image_generator(self._image_provider, params)
        narrator = self._narrator or ElevenLabsNarrator()

        pipeline = VideoPipeline(image_generator=image_generator, narrator=narrator, config=self.config)
        video_path = await pipeline.run(outline.pages, params.output)

        story = build_story(outline, params, pipeline.artifacts)
        logger.info(f"Story '{story.title}' rendered to {video_path}")
        return StoryVideo(
            story=story,
            video_path=video_path,
            run_id=pipeline.workspace.run_id,
            workspace_root=pipeline.workspace.root,
        )
