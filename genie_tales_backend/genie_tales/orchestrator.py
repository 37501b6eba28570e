import os, asyncio, logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from langgraph.graph import StateGraph, END

from .assembler import PageClipAssembler
from .concatenator import SequenceConcatenator, validate_page_numbers
from .errors import GenerationError, StoryVideoError
from .materializer import ArtifactMaterializer
from .media import AudioPayload, ImagePayload
from .models import (
    PageArtifact,
    PageClip,
    PageDescriptor,
    PageStatus,
    PipelineConfig,
    PipelineState,
    RunStatus,
    RunWorkspace,
)
from .workspace import allocate_workspace, cleanup_workspace, create_workspace, ensure_output_dir

logger = logging.getLogger(__name__)


class ImageGenerator(Protocol):
    async def generate_image(self, page: PageDescriptor) -> Optional[ImagePayload]: ...


class Narrator(Protocol):
    async def stream_narration(self, page: PageDescriptor) -> Optional[AudioPayload]: ...


class VideoPipeline:
    """One story run: workspace -> pages (materialize + clip) -> manifest -> concat.

    Pages are processed by at most ``config.max_workers`` concurrent workers.
    After the first page failure no further pages are started, in-flight pages
    finish, and the run ends FAILED with the workspace left on disk.
    """

    def __init__(
        self,
        image_generator: Optional[ImageGenerator] = None,
        narrator: Optional[Narrator] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.image_generator = image_generator
        self.narrator = narrator
        self.config = config or PipelineConfig()
        self.status = RunStatus.INIT
        self.workspace: Optional[RunWorkspace] = None
        self.page_status: Dict[int, PageStatus] = {}
        self.artifacts: Dict[int, PageArtifact] = {}
        self.clips: Dict[int, PageClip] = {}
        self.final_path: Optional[str] = None
        self.error: Optional[BaseException] = None
        self._started = False
        self._graph = self._build_graph()

    def _build_graph(self):
        g = StateGraph(PipelineState)
        g.add_node("workspace", self.node_workspace)
        g.add_node("pages", self.node_pages)
        g.add_node("manifest", self.node_manifest)
        g.add_node("concat", self.node_concat)
        g.set_entry_point("workspace")
        g.add_edge("workspace", "pages")
        g.add_edge("pages", "manifest")
        g.add_edge("manifest", "concat")
        g.add_edge("concat", END)
        return g.compile()

    def _transition(self, state: Optional[PipelineState], status: RunStatus):
        self.status = status
        if state is not None:
            state.status = status
        run_id = self.workspace.run_id if self.workspace else "-"
        logger.info(f"Run {run_id} -> {status.value}")

    def _mk_state(self, pages: Sequence[PageDescriptor], output_dir: str) -> PipelineState:
        validate_page_numbers(page.page_number for page in pages)
        workspace = allocate_workspace(self.config.temp_root)
        self.workspace = workspace
        self.page_status = {page.page_number: PageStatus.PENDING for page in pages}
        return PipelineState(run_id=workspace.run_id, workspace=workspace, output_dir=output_dir, pages=list(pages))

    async def run(self, pages: Sequence[PageDescriptor], output_dir: str) -> str:
        """Render ``pages`` into ``{output_dir}/{config.output_name}`` and return its path."""
        if self._started:
            raise RuntimeError("VideoPipeline instances run once; create a new one per story")
        self._started = True
        try:
            state = self._mk_state(pages, output_dir)
            logger.info(f"Starting pipeline for run {state.run_id} with {len(state.pages)} pages")
            result = await self._graph.ainvoke(state)
            # LangGraph hands back the channel values as a dict
            final_state = result if isinstance(result, PipelineState) else PipelineState.model_validate(result)
            self.final_path = final_state.final_path
            if self.config.cleanup_on_success:
                cleanup_workspace(final_state.workspace)
        except (Exception, asyncio.CancelledError) as e:
            self.error = e
            self._transition(None, RunStatus.FAILED)
            logger.error(f"Pipeline failed: {e}")
            raise
        self._transition(None, RunStatus.DONE)
        return self.final_path

    async def node_workspace(self, state: PipelineState) -> PipelineState:
        create_workspace(state.workspace)
        state.output_dir = ensure_output_dir(state.output_dir)
        self._transition(state, RunStatus.WORKSPACE_READY)
        return state

    async def node_pages(self, state: PipelineState) -> PipelineState:
        materializer = ArtifactMaterializer(state.workspace)
        assembler = PageClipAssembler(state.workspace, self.config)
        pending = iter(state.pages)
        failures: List[BaseException] = []

        async def worker():
            # the iterator is shared, so each page is taken by exactly one worker
            for page in pending:
                if failures:
                    return
                try:
                    self.clips[page.page_number] = await self._process_page(page, materializer, assembler)
                except Exception as e:
                    self.page_status[page.page_number] = PageStatus.FAILED
                    logger.error(f"Error processing page {page.page_number}: {e}")
                    failures.append(e)
                    return

        workers = min(self.config.max_workers, len(state.pages))
        logger.info(f"Processing {len(state.pages)} pages with {workers} workers")
        await asyncio.gather(*(worker() for _ in range(workers)))
        if failures:
            raise failures[0]

        state.artifacts = dict(self.artifacts)
        state.clips = dict(self.clips)
        return state

    async def _process_page(
        self,
        page: PageDescriptor,
        materializer: ArtifactMaterializer,
        assembler: PageClipAssembler,
    ) -> PageClip:
        number = page.page_number
        image = await self._generate(self.image_generator.generate_image, page) if self.image_generator else None
        audio = await self._generate(self.narrator.stream_narration, page) if self.narrator else None

        artifact = await materializer.materialize(number, image=image, audio=audio)
        self.artifacts[number] = artifact
        self.page_status[number] = PageStatus.MATERIALIZED

        path = await assembler.assemble_clip(artifact.image_path, artifact.audio_path, number)
        self.page_status[number] = PageStatus.CLIP_READY
        return PageClip(page_number=number, path=path)

    @staticmethod
    async def _generate(call: Callable[[PageDescriptor], Awaitable], page: PageDescriptor):
        try:
            return await call(page)
        except StoryVideoError:
            raise
        except Exception as e:
            raise GenerationError(f"{type(e).__name__}: {e}", page.page_number) from e

    async def node_manifest(self, state: PipelineState) -> PipelineState:
        concatenator = SequenceConcatenator(state.workspace, self.config)
        manifest = concatenator.build_manifest(list(state.clips.values()), expected_count=len(state.pages))
        state.manifest = manifest.paths
        self._transition(state, RunStatus.MANIFEST_BUILT)
        return state

    async def node_concat(self, state: PipelineState) -> PipelineState:
        concatenator = SequenceConcatenator(state.workspace, self.config)
        destination = os.path.join(state.output_dir, self.config.output_name)
        state.final_path = await concatenator.concatenate_manifest(destination)
        self._transition(state, RunStatus.CONCATENATED)
        return state


async def generate_video(
    pages: Sequence[PageDescriptor],
    output_dir: str,
    image_generator: Optional[ImageGenerator] = None,
    narrator: Optional[Narrator] = None,
    config: Optional[PipelineConfig] = None,
) -> str:
    pipeline = VideoPipeline(image_generator=image_generator, narrator=narrator, config=config)
    return await pipeline.run(pages, output_dir)
