"""
Persists generated page payloads into the run workspace.

Paths are derived from the page number only, so materializing the same page
again overwrites the earlier files instead of adding new ones.
"""
import logging
from typing import Optional

from .media import AudioPayload, ImagePayload, decode_image_payload, drain_stream, ensure_png, write_bytes
from .models import PageArtifact, RunWorkspace

logger = logging.getLogger(__name__)


class ArtifactMaterializer:
    def __init__(self, workspace: RunWorkspace):
        self.workspace = workspace

    def save_image(self, page_number: int, payload: ImagePayload) -> str:
        path = self.workspace.image_path(page_number)
        data = ensure_png(decode_image_payload(payload, page_number), page_number)
        write_bytes(path, data)
        logger.info(f"Image saved for page {page_number} at {path}")
        return path

    async def save_audio(self, page_number: int, stream: AudioPayload) -> str:
        path = self.workspace.audio_path(page_number)
        await drain_stream(stream, path, page_number)
        logger.info(f"Audio saved for page {page_number} at {path}")
        return path

    async def materialize(
        self,
        page_number: int,
        image: Optional[ImagePayload] = None,
        audio: Optional[AudioPayload] = None,
    ) -> PageArtifact:
        image_path = self.save_image(page_number, image) if image is not None else None
        audio_path = await self.save_audio(page_number, audio) if audio is not None else None
        return PageArtifact(page_number=page_number, image_path=image_path, audio_path=audio_path)
