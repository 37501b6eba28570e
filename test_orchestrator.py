"""
Tests for the page-to-video pipeline
"""
import os
import asyncio

import pytest

from genie_tales.errors import GenerationError, ManifestError, StreamError, AssemblyError
from genie_tales.models import AssemblyPolicy, PageDescriptor, PageStatus, RunStatus
from genie_tales.orchestrator import VideoPipeline, generate_video


class FakeIllustrator:
    def __init__(self, image, delays=None, fail_on=()):
        self.image = image
        self.delays = delays or {}
        self.fail_on = set(fail_on)
        self.calls = []
        self.active = 0
        self.peak = 0

    async def generate_image(self, page):
        self.calls.append(page.page_number)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(page.page_number, 0.01))
            if page.page_number in self.fail_on:
                raise ValueError("content policy violation")
            return self.image
        finally:
            self.active -= 1


class FakeNarrator:
    def __init__(self, broken=()):
        self.broken = set(broken)

    async def stream_narration(self, page):
        if page.page_number in self.broken:
            return self._broken_stream()
        return self._stream(page)

    @staticmethod
    async def _stream(page):
        for word in page.text.split():
            await asyncio.sleep(0)
            yield word.encode() + b" "

    @staticmethod
    async def _broken_stream():
        yield b"ID3"
        raise ConnectionResetError("stream dropped")


def make_pages(numbers):
    return [PageDescriptor(page_number=n, text=f"Page {n} text.") for n in numbers]


def read_manifest(pipeline):
    with open(pipeline.workspace.manifest_path) as f:
        return f.read()


@pytest.mark.asyncio
class TestVideoPipeline:

    async def test_renders_pages_into_final_video(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        pipeline = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)
        output_dir = str(tmp_path / "out")

        final_path = await pipeline.run(pages, output_dir)

        assert final_path == os.path.join(output_dir, "story.mp4")
        assert os.path.exists(final_path)
        assert pipeline.status == RunStatus.DONE
        assert pipeline.page_status == {1: PageStatus.CLIP_READY, 2: PageStatus.CLIP_READY, 3: PageStatus.CLIP_READY}
        assert sorted(pipeline.artifacts) == [1, 2, 3]
        assert len(fake_ffmpeg.clip_calls) == 3
        assert len(fake_ffmpeg.concat_calls) == 1
        # kept by default for inspection
        assert os.path.isdir(pipeline.workspace.root)

    async def test_manifest_follows_page_numbers_not_completion(self, config, fake_ffmpeg, png_factory, tmp_path):
        config = config.model_copy(update={"max_workers": 3})
        illustrator = FakeIllustrator(png_factory(), delays={1: 0.15, 2: 0.08, 3: 0.01})
        pipeline = VideoPipeline(illustrator, FakeNarrator(), config)

        await pipeline.run(make_pages([2, 1, 3]), str(tmp_path / "out"))

        finished = [page for _, page in fake_ffmpeg.clip_calls]
        assert finished == [3, 2, 1]
        expected = "".join(f"file {pipeline.workspace.clip_path(n)}\n" for n in (1, 2, 3))
        assert read_manifest(pipeline) == expected

    async def test_stream_failure_fails_run_and_keeps_other_pages(
        self, config, fake_ffmpeg, png_factory, tmp_path
    ):
        config = config.model_copy(update={"max_workers": 3})
        pipeline = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(broken={2}), config)
        output_dir = str(tmp_path / "out")

        with pytest.raises(StreamError) as exc_info:
            await pipeline.run(make_pages([1, 2, 3]), output_dir)

        assert exc_info.value.page_number == 2
        assert pipeline.status == RunStatus.FAILED
        assert pipeline.page_status[2] == PageStatus.FAILED
        for n in (1, 3):
            assert os.path.exists(pipeline.artifacts[n].image_path)
            assert os.path.exists(pipeline.artifacts[n].audio_path)
        assert not os.path.exists(os.path.join(output_dir, "story.mp4"))
        assert fake_ffmpeg.concat_calls == []
        assert os.path.isdir(pipeline.workspace.root)

    async def test_no_new_pages_start_after_failure(self, config, fake_ffmpeg, png_factory, tmp_path):
        config = config.model_copy(update={"max_workers": 1})
        illustrator = FakeIllustrator(png_factory(), fail_on={1})
        pipeline = VideoPipeline(illustrator, FakeNarrator(), config)

        with pytest.raises(GenerationError) as exc_info:
            await pipeline.run(make_pages([1, 2, 3, 4]), str(tmp_path / "out"))

        assert exc_info.value.page_number == 1
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert illustrator.calls == [1]
        assert pipeline.page_status[1] == PageStatus.FAILED
        assert all(pipeline.page_status[n] == PageStatus.PENDING for n in (2, 3, 4))
        assert fake_ffmpeg.calls == []

    async def test_worker_pool_is_bounded(self, config, fake_ffmpeg, png_factory, tmp_path):
        illustrator = FakeIllustrator(png_factory(), delays={n: 0.03 for n in range(1, 7)})
        pipeline = VideoPipeline(illustrator, FakeNarrator(), config)

        await pipeline.run(make_pages(range(1, 7)), str(tmp_path / "out"))

        assert illustrator.peak == config.max_workers
        assert sorted(illustrator.calls) == [1, 2, 3, 4, 5, 6]

    @pytest.mark.parametrize("numbers", [[1, 1, 2], [1, 3], [0, 1]])
    async def test_bad_page_numbers_rejected_before_any_work(
        self, numbers, config, fake_ffmpeg, png_factory, tmp_path
    ):
        illustrator = FakeIllustrator(png_factory())
        pipeline = VideoPipeline(illustrator, FakeNarrator(), config)
        pages = [PageDescriptor.model_construct(page_number=n, text="x", illustration_prompt="") for n in numbers]

        with pytest.raises(ManifestError):
            await pipeline.run(pages, str(tmp_path / "out"))

        assert pipeline.status == RunStatus.FAILED
        assert illustrator.calls == []
        assert fake_ffmpeg.calls == []
        assert not os.path.exists(config.temp_root)

    async def test_concat_failure_leaves_no_output(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        fake_ffmpeg.fail_pages.add(None)
        pipeline = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)
        output_dir = str(tmp_path / "out")

        with pytest.raises(AssemblyError):
            await pipeline.run(pages, output_dir)

        assert pipeline.status == RunStatus.FAILED
        assert not os.path.exists(os.path.join(output_dir, "story.mp4"))
        assert sorted(pipeline.clips) == [1, 2, 3]

    async def test_best_effort_without_illustrator(self, pages, config, fake_ffmpeg, tmp_path):
        config = config.model_copy(update={"policy": AssemblyPolicy.BEST_EFFORT})
        pipeline = VideoPipeline(narrator=FakeNarrator(), config=config)

        await pipeline.run(pages, str(tmp_path / "out"))

        for cmd, _ in fake_ffmpeg.clip_calls:
            assert any(arg.startswith("color=c=black") for arg in cmd)

    async def test_strict_without_narrator_fails(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        pipeline = VideoPipeline(image_generator=FakeIllustrator(png_factory()), config=config)
        with pytest.raises(AssemblyError):
            await pipeline.run(pages, str(tmp_path / "out"))
        assert pipeline.status == RunStatus.FAILED

    async def test_cleanup_on_success(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        config = config.model_copy(update={"cleanup_on_success": True})
        pipeline = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)

        final_path = await pipeline.run(pages, str(tmp_path / "out"))

        assert os.path.exists(final_path)
        assert not os.path.exists(pipeline.workspace.root)

    async def test_runs_once(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        pipeline = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)
        await pipeline.run(pages, str(tmp_path / "out"))
        with pytest.raises(RuntimeError):
            await pipeline.run(pages, str(tmp_path / "out"))

    async def test_concurrent_runs_get_separate_workspaces(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        first = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)
        second = VideoPipeline(FakeIllustrator(png_factory()), FakeNarrator(), config)

        paths = await asyncio.gather(
            first.run(pages, str(tmp_path / "a")),
            second.run(pages, str(tmp_path / "b")),
        )

        assert first.workspace.root != second.workspace.root
        assert all(os.path.exists(path) for path in paths)

    async def test_generate_video_helper(self, pages, config, fake_ffmpeg, png_factory, tmp_path):
        path = await generate_video(
            pages, str(tmp_path / "out"), FakeIllustrator(png_factory()), FakeNarrator(), config
        )
        assert path == os.path.join(str(tmp_path / "out"), "story.mp4")
