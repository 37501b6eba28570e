import os, httpx, logging
from typing import AsyncIterator, Optional

from .errors import GenerationError
from .models import PageDescriptor
from .settings import ELEVENLABS_MODEL_ID, ELEVENLABS_OUTPUT_FORMAT, ELEVENLABS_VOICE_ID

logger = logging.getLogger(__name__)

API_BASE = "https://api.elevenlabs.io/v1"


def _headers():
    api_key = os.getenv("ELEVENLABS_API_KEY", "")
    if not api_key:
        raise RuntimeError("ELEVENLABS_API_KEY is not set; please configure your .env")
    return {
        "xi-api-key": api_key,
        "Content-Type": "application/json"
    }


class ElevenLabsNarrator:
    """Streams page narration as mp3 chunks from the ElevenLabs TTS stream endpoint."""

    def __init__(
        self,
        voice_id: str = ELEVENLABS_VOICE_ID,
        model_id: str = ELEVENLABS_MODEL_ID,
        output_format: str = ELEVENLABS_OUTPUT_FORMAT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not voice_id:
            raise RuntimeError("ELEVENLABS_VOICE_ID is not set; please configure your .env")
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self._transport = transport

    async def stream_narration(self, page: PageDescriptor) -> AsyncIterator[bytes]:
        """Open the TTS response and return an iterator over its audio chunks.

        Connection and HTTP status failures surface here, before any audio is read.
        """
        headers = _headers()
        payload = {"text": page.text, "model_id": self.model_id}
        url = f"{API_BASE}/text-to-speech/{self.voice_id}/stream"
        logger.info(f"Requesting audio from ElevenLabs for page {page.page_number}")

        client = httpx.AsyncClient(timeout=60, transport=self._transport)
        try:
            request = client.build_request(
                "POST", url, headers=headers, params={"output_format": self.output_format}, json=payload
            )
            r = await client.send(request, stream=True)
            if r.status_code >= 400:
                body = (await r.aread()).decode("utf-8", errors="replace")
                await r.aclose()
                raise GenerationError(f"ElevenLabs TTS failed {r.status_code}: {body[:500]}", page.page_number)
        except httpx.TransportError as e:
            await client.aclose()
            raise GenerationError(f"ElevenLabs request failed: {type(e).__name__}: {e}", page.page_number) from e
        except BaseException:
            await client.aclose()
            raise
        return self._stream(client, r)

    @staticmethod
    async def _stream(client: httpx.AsyncClient, r: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in r.aiter_bytes():
                yield chunk
        finally:
            await r.aclose()
            await client.aclose()
