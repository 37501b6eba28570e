"""
Error taxonomy for the story video pipeline.

Every error is fatal to the run; retrying belongs to the caller.
"""
from typing import List, Optional


class StoryVideoError(RuntimeError):
    """Base class; carries the page number when the failure is page-scoped."""

    def __init__(self, message: str, page_number: Optional[int] = None):
        self.page_number = page_number
        if page_number is not None:
            message = f"page {page_number}: {message}"
        super().__init__(message)


class GenerationError(StoryVideoError):
    """An upstream collaborator (story, image or narration) failed for a page."""


class DecodeError(StoryVideoError):
    """An image payload could not be decoded."""


class StreamError(StoryVideoError):
    """Draining a narration stream to disk failed."""


class ManifestError(StoryVideoError):
    """Page numbers are duplicated or not contiguous from 1..N."""


class WorkspaceError(StoryVideoError):
    """The run workspace or output directory could not be prepared or removed."""


class AssemblyError(StoryVideoError):
    """The transcoder failed to start, exited non-zero or timed out."""

    def __init__(
        self,
        message: str,
        page_number: Optional[int] = None,
        returncode: Optional[int] = None,
        diagnostics: str = "",
        command: Optional[List[str]] = None,
    ):
        super().__init__(message, page_number=page_number)
        self.returncode = returncode
        self.diagnostics = diagnostics
        self.command = command or []
