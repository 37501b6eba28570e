import os
import tempfile
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
STORY_LLM_MODEL = os.getenv("STORY_LLM_MODEL", "gpt-4o-mini")
STORY_LLM_TEMPERATURE = float(os.getenv("STORY_LLM_TEMPERATURE", "0.7"))
STORY_LLM_MAX_TOKENS = int(os.getenv("STORY_LLM_MAX_TOKENS", "8000"))

IMAGE_PROVIDER = os.getenv("IMAGE_PROVIDER", "replicate").strip().lower()
OPENAI_IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3")
IMAGE_SIZE = os.getenv("IMAGE_SIZE", "1024x1024")

REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
REPLICATE_MODEL_VERSION = os.getenv("REPLICATE_MODEL_VERSION", "")
REPLICATE_POLL_INTERVAL_MS = int(os.getenv("REPLICATE_POLL_INTERVAL_MS", "1500"))
REPLICATE_POLL_TIMEOUT_S = int(os.getenv("REPLICATE_POLL_TIMEOUT_S", "120"))

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "JBFqnCBsd6RMkjVDRZzb")
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
ELEVENLABS_OUTPUT_FORMAT = os.getenv("ELEVENLABS_OUTPUT_FORMAT", "mp3_44100_128")

FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
FFMPEG_TIMEOUT_S = float(os.getenv("FFMPEG_TIMEOUT_S", "300"))

# Each page worker runs its own ffmpeg encode, keep this small
PAGE_WORKERS = int(os.getenv("PAGE_WORKERS", "3"))

ASSEMBLY_POLICY = os.getenv("ASSEMBLY_POLICY", "strict").strip().lower()
SILENT_CLIP_DURATION_S = float(os.getenv("SILENT_CLIP_DURATION_S", "3"))

VIDEO_WIDTH = int(os.getenv("VIDEO_WIDTH", "1280"))
VIDEO_HEIGHT = int(os.getenv("VIDEO_HEIGHT", "720"))
FPS = int(os.getenv("FPS", "30"))

TEMP_ROOT = os.getenv("GENIE_TEMP_ROOT", "").strip() or os.path.join(tempfile.gettempdir(), "genie-tales")
VIDEO_NAME = os.getenv("VIDEO_NAME", "story.mp4")
CLEANUP_WORKSPACE = _env_bool("CLEANUP_WORKSPACE")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = _env_bool("LOG_TO_FILE")
LOG_DIR = os.getenv("LOG_DIR", "logs")


def configure_logging() -> None:
    """Opt-in logging setup for applications embedding the pipeline.

    The library itself never configures handlers; call this from your entry point.
    """
    handlers = [logging.StreamHandler()]
    if LOG_TO_FILE:
        os.makedirs(LOG_DIR, exist_ok=True)
        log_file = os.path.join(LOG_DIR, "app.log")
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def has_all_keys() -> bool:
    keys = {"OPENAI_API_KEY": OPENAI_API_KEY, "ELEVENLABS_API_KEY": ELEVENLABS_API_KEY}
    if IMAGE_PROVIDER == "replicate":
        keys["REPLICATE_API_TOKEN"] = REPLICATE_API_TOKEN
    missing = [name for name, value in keys.items() if not value]
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return not missing
