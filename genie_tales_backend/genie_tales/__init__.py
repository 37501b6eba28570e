import logging

from .errors import (
    AssemblyError,
    DecodeError,
    GenerationError,
    ManifestError,
    StoryVideoError,
    StreamError,
    WorkspaceError,
)
from .models import (
    AssemblyPolicy,
    PageArtifact,
    PageClip,
    PageDescriptor,
    PipelineConfig,
    RunStatus,
    RunWorkspace,
    Story,
    StoryParameters,
    StoryVideo,
)
from .orchestrator import VideoPipeline, generate_video
from .story_service import StoryVideoService

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
