import os
import io
import sys
import asyncio

import pytest
from PIL import Image

# Add the backend to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "genie_tales_backend"))

from genie_tales import media
from genie_tales.errors import AssemblyError
from genie_tales.models import PageDescriptor, PipelineConfig


class FakeFFmpeg:
    """Stands in for media.run_ffmpeg: records commands and writes the output file."""

    def __init__(self):
        self.calls = []
        self.fail_pages = set()
        self.delays = {}
        self.write_output = True

    async def __call__(self, cmd, timeout, page_number=None):
        self.calls.append((list(cmd), page_number))
        if page_number in self.delays:
            await asyncio.sleep(self.delays[page_number])
        if page_number in self.fail_pages:
            raise AssemblyError("exited with return code 1", page_number, returncode=1, diagnostics="Invalid data found")
        if self.write_output:
            with open(cmd[-1], "wb") as f:
                f.write(f"clip {page_number}".encode())
        return ""

    @property
    def clip_calls(self):
        return [call for call in self.calls if call[1] is not None]

    @property
    def concat_calls(self):
        return [call for call in self.calls if "concat" in call[0]]


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    fake = FakeFFmpeg()
    monkeypatch.setattr(media, "run_ffmpeg", fake)
    return fake


@pytest.fixture
def png_factory():
    def make(color=(255, 0, 0), size=(1, 1), fmt="PNG"):
        buffer = io.BytesIO()
        Image.new("RGB", size, color).save(buffer, format=fmt)
        return buffer.getvalue()
    return make


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(temp_root=str(tmp_path / "runs"), max_workers=2, ffmpeg_timeout_s=30)


@pytest.fixture
def pages():
    return [
        PageDescriptor(page_number=n, text=f"Page {n} of the story.", illustration_prompt=f"Scene {n}")
        for n in (1, 2, 3)
    ]
