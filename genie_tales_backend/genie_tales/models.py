import os
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .settings import (
    ASSEMBLY_POLICY,
    CLEANUP_WORKSPACE,
    FFMPEG_BIN,
    FFMPEG_TIMEOUT_S,
    FPS,
    PAGE_WORKERS,
    SILENT_CLIP_DURATION_S,
    TEMP_ROOT,
    VIDEO_HEIGHT,
    VIDEO_NAME,
    VIDEO_WIDTH,
)


class AgeRange(str, Enum):
    TODDLER = "toddler"  # 1-3 years
    PRESCHOOL = "preschool"  # 3-5 years
    EARLY_READER = "early-reader"  # 5-7 years
    MIDDLE_GRADE = "middle-grade"  # 8-12 years


class StoryTheme(str, Enum):
    ADVENTURE = "adventure"
    FANTASY = "fantasy"
    ANIMALS = "animals"
    FRIENDSHIP = "friendship"
    FAMILY = "family"
    SCHOOL = "school"
    NATURE = "nature"
    SCIENCE = "science"


class StoryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class AssemblyPolicy(str, Enum):
    STRICT = "strict"
    BEST_EFFORT = "best-effort"


class RunStatus(str, Enum):
    INIT = "init"
    WORKSPACE_READY = "workspace_ready"
    MANIFEST_BUILT = "manifest_built"
    CONCATENATED = "concatenated"
    DONE = "done"
    FAILED = "failed"


class PageStatus(str, Enum):
    PENDING = "pending"
    MATERIALIZED = "materialized"
    CLIP_READY = "clip_ready"
    FAILED = "failed"


class Character(BaseModel):
    name: str
    type: Optional[str] = None  # e.g. "animal", "child", "fairy"
    traits: List[str] = Field(default_factory=list)

    def describe(self) -> str:
        text = self.name
        if self.type:
            text += f", a {self.type}"
        if self.traits:
            text += f" who is {', '.join(self.traits)}"
        return text


class StoryParameters(BaseModel):
    age_range: AgeRange
    theme: StoryTheme
    length: StoryLength
    character: Character
    output: str = Field(default_factory=os.getcwd)


class PageDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_number: int = Field(gt=0, alias="pageNumber")
    text: str = Field(alias="story")
    illustration_prompt: str = Field(default="", alias="illustrationPrompt")


class StoryOutline(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(alias="storyTitle")
    pages: List[PageDescriptor]


class PageArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int
    image_path: Optional[str] = None
    audio_path: Optional[str] = None


class PageClip(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int
    path: str


class RunWorkspace(BaseModel):
    """Directory tree owned by a single pipeline run.

    Layout::

        {root}/images/{page}.png
        {root}/audios/{page}.mp3
        {root}/clips/page-{page}.mp4
        {root}/file_list.txt
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    root: str

    @property
    def images_dir(self) -> str:
        return os.path.join(self.root, "images")

    @property
    def audios_dir(self) -> str:
        return os.path.join(self.root, "audios")

    @property
    def clips_dir(self) -> str:
        return os.path.join(self.root, "clips")

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.root, "file_list.txt")

    def image_path(self, page_number: int) -> str:
        return os.path.join(self.images_dir, f"{page_number}.png")

    def audio_path(self, page_number: int) -> str:
        return os.path.join(self.audios_dir, f"{page_number}.mp3")

    def clip_path(self, page_number: int) -> str:
        return os.path.join(self.clips_dir, f"page-{page_number}.mp4")


class PipelineConfig(BaseModel):
    temp_root: str = TEMP_ROOT
    output_name: str = VIDEO_NAME
    max_workers: int = Field(default=PAGE_WORKERS, ge=1)
    ffmpeg_bin: str = FFMPEG_BIN
    ffmpeg_timeout_s: float = Field(default=FFMPEG_TIMEOUT_S, gt=0)
    policy: AssemblyPolicy = Field(default=ASSEMBLY_POLICY, validate_default=True)
    silent_clip_duration_s: float = Field(default=SILENT_CLIP_DURATION_S, gt=0)
    video_width: int = VIDEO_WIDTH
    video_height: int = VIDEO_HEIGHT
    fps: int = FPS
    cleanup_on_success: bool = CLEANUP_WORKSPACE


class PipelineState(BaseModel):
    run_id: str
    workspace: RunWorkspace
    output_dir: str
    pages: List[PageDescriptor]
    status: RunStatus = RunStatus.INIT
    artifacts: Dict[int, PageArtifact] = Field(default_factory=dict)
    clips: Dict[int, PageClip] = Field(default_factory=dict)
    manifest: List[str] = Field(default_factory=list)
    final_path: Optional[str] = None


class StoryContent(BaseModel):
    page_number: int
    text: str
    illustration_prompt: str = ""
    image_path: Optional[str] = None
    audio_path: Optional[str] = None


class Story(BaseModel):
    title: str
    created_at: datetime = Field(default_factory=datetime.now)
    parameters: StoryParameters
    contents: List[StoryContent]


class StoryVideo(BaseModel):
    story: Story
    video_path: str
    run_id: str
    workspace_root: str
