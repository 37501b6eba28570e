import os, io, re, base64, binascii, asyncio, shlex, logging
from typing import AsyncIterable, Iterable, List, Optional, Union

from PIL import Image, UnidentifiedImageError

from .errors import AssemblyError, DecodeError, StoryVideoError, StreamError

logger = logging.getLogger(__name__)

ImagePayload = Union[bytes, bytearray, str]
AudioPayload = Union[bytes, bytearray, AsyncIterable[bytes], Iterable[bytes]]

AUDIO_SAMPLE_RATE = 44100

# Characters the concat demuxer accepts in an unquoted path token
_CONCAT_SAFE_PATH = re.compile(r"^[\w./:@%+=,-]+$")

_END_OF_STREAM = object()


def write_bytes(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


def write_text(path: str, text: str):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


def remove_file(path: str) -> bool:
    """Best-effort delete. Returns True when a file was removed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False


def decode_image_payload(payload: ImagePayload, page_number: Optional[int] = None) -> bytes:
    """Turn raw bytes, base64 text or a data URI into image bytes."""
    if isinstance(payload, (bytes, bytearray)):
        data = bytes(payload)
    elif isinstance(payload, str):
        # "data:image/png;base64,...." -> "...."
        encoded = "".join(payload.split(";base64,")[-1].split())
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"malformed base64 image payload: {e}", page_number) from e
    else:
        raise DecodeError(f"unsupported image payload type {type(payload).__name__}", page_number)
    if not data:
        raise DecodeError("image payload is empty", page_number)
    return data


def ensure_png(data: bytes, page_number: Optional[int] = None) -> bytes:
    """Return PNG bytes, converting other formats (e.g. WebP) with Pillow."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format == "PNG":
                return data
            logger.info(f"Converting {img.format} image to PNG for page {page_number}")
            # Flatten transparency onto white so ffmpeg gets a plain RGB frame
            if img.mode in ("RGBA", "LA"):
                rgba = img.convert("RGBA")
                background = Image.new("RGB", rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[-1])
                converted = background
            elif img.mode != "RGB":
                converted = img.convert("RGB")
            else:
                converted = img
            buffer = io.BytesIO()
            converted.save(buffer, format="PNG")
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeError(f"image payload is not a readable image: {e}", page_number) from e


async def drain_stream(stream: AudioPayload, path: str, page_number: Optional[int] = None) -> int:
    """Write a narration stream to ``path`` chunk by chunk. Returns bytes written."""
    written = 0
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            if isinstance(stream, (bytes, bytearray)):
                f.write(stream)
                written = len(stream)
            elif hasattr(stream, "__aiter__"):
                async for chunk in stream:
                    f.write(chunk)
                    written += len(chunk)
            else:
                # blocking iterators are pulled off the event loop
                chunks = iter(stream)
                while True:
                    chunk = await asyncio.to_thread(next, chunks, _END_OF_STREAM)
                    if chunk is _END_OF_STREAM:
                        break
                    f.write(chunk)
                    written += len(chunk)
    except StoryVideoError:
        raise
    except Exception as e:
        logger.error(f"Error writing stream to {path}: {e}")
        raise StreamError(f"failed to save narration to {path}: {e}", page_number) from e
    if written == 0:
        raise StreamError(f"narration stream for {path} was empty", page_number)
    logger.debug(f"Stream saved at {path} ({written} bytes)")
    return written


def _frame_filter(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,format=yuv420p"
    )


def build_clip_cmd(
    out_path: str,
    image_path: Optional[str] = None,
    audio_path: Optional[str] = None,
    *,
    width: int,
    height: int,
    fps: int,
    duration: Optional[float] = None,
    ffmpeg_bin: str = "ffmpeg",
) -> List[str]:
    """Still image + narration -> one H.264/AAC clip.

    A missing image becomes a black frame and missing audio becomes silence;
    every clip shares frame size, rate and audio format so they can be
    concatenated with stream copy.
    """
    if not image_path and not audio_path:
        raise ValueError("a clip needs an image, an audio track or both")
    cmd = [ffmpeg_bin, "-y"]
    if image_path:
        cmd += ["-loop", "1", "-i", image_path]
    else:
        cmd += ["-f", "lavfi", "-i", f"color=c=black:s={width}x{height}:r={fps}"]
    if audio_path:
        cmd += ["-i", audio_path]
    else:
        cmd += ["-f", "lavfi", "-i", f"anullsrc=r={AUDIO_SAMPLE_RATE}:cl=stereo"]
    cmd += [
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-vf", _frame_filter(width, height),
        "-r", str(fps),
        "-c:v", "libx264",
        "-tune", "stillimage",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-ar", str(AUDIO_SAMPLE_RATE),
        "-ac", "2",
    ]
    if duration is not None:
        cmd += ["-t", f"{duration:.3f}"]
    cmd += ["-shortest", out_path]
    return cmd


def build_concat_cmd(manifest_path: str, out_path: str, ffmpeg_bin: str = "ffmpeg") -> List[str]:
    return [ffmpeg_bin, "-f", "concat", "-safe", "0", "-i", manifest_path, "-c", "copy", out_path]


def quote_concat_path(path: str) -> str:
    if _CONCAT_SAFE_PATH.match(path):
        return path
    return "'" + path.replace("'", "'\\''") + "'"


async def run_ffmpeg(cmd: List[str], timeout: float, page_number: Optional[int] = None) -> str:
    """Run a transcoder command to completion and return its stderr.

    Raises AssemblyError on spawn failure, non-zero exit or timeout. Timed-out
    and cancelled processes are killed and reaped first.
    """
    logger.debug(f"Running FFmpeg command: {shlex.join(cmd)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise AssemblyError(f"failed to start {cmd[0]}: {e}", page_number, command=cmd) from e

    # collected incrementally so a timeout still reports what ffmpeg printed
    stderr_chunks: List[bytes] = []

    async def collect_stderr():
        while True:
            chunk = await proc.stderr.read(65536)
            if not chunk:
                return
            stderr_chunks.append(chunk)

    try:
        await asyncio.wait_for(asyncio.gather(collect_stderr(), proc.wait()), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise AssemblyError(
            f"{cmd[0]} timed out after {timeout:g}s",
            page_number,
            diagnostics=_decode(stderr_chunks),
            command=cmd,
        )
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    diagnostics = _decode(stderr_chunks)
    if proc.returncode != 0:
        logger.error(f"FFmpeg command failed with return code {proc.returncode}")
        raise AssemblyError(
            f"{cmd[0]} exited with return code {proc.returncode}",
            page_number,
            returncode=proc.returncode,
            diagnostics=diagnostics,
            command=cmd,
        )
    return diagnostics


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


async def _kill(proc: asyncio.subprocess.Process):
    try:
        proc.kill()
    except ProcessLookupError:
        # exited between the timeout and the kill
        pass
    await proc.wait()
