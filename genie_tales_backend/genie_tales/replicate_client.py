import os, time, httpx, asyncio, logging
from typing import Callable, Optional

from .models import PageDescriptor
from .settings import REPLICATE_MODEL_VERSION, REPLICATE_POLL_INTERVAL_MS, REPLICATE_POLL_TIMEOUT_S

logger = logging.getLogger(__name__)

API_BASE = "https://api.replicate.com/v1"


def _headers():
    token = os.getenv("REPLICATE_API_TOKEN", "")
    if not token:
        raise RuntimeError("REPLICATE_API_TOKEN is not set; please configure your .env")
    return {"Authorization": f"Token {token}"}


def _model_selector() -> str:
    # Prefer explicit version from env for stability; fall back to a public model alias (latest).
    return REPLICATE_MODEL_VERSION or "black-forest-labs/flux-schnell"


def _parse_selector(selector: str):
    # ("version", {"version": <hash>}) or ("model", {"owner": <owner>, "name": <name>})
    owner_name, _, _version_alias = selector.partition(":")
    if "/" in owner_name:
        owner, name = owner_name.split("/", 1)
        return "model", {"owner": owner, "name": name}
    return "version", {"version": selector}


async def _create_prediction(client: httpx.AsyncClient, prompt: str) -> str:
    selector = _model_selector()
    logger.info(f"Using Replicate model: {selector}")
    json_body = {"input": {"prompt": prompt, "num_outputs": 1, "output_format": "png"}}
    mode, data = _parse_selector(selector)
    if mode == "version":
        json_body["version"] = data["version"]
        url = f"{API_BASE}/predictions"
    else:
        url = f"{API_BASE}/models/{data['owner']}/{data['name']}/predictions"

    headers = {**_headers(), "Content-Type": "application/json"}
    r = await client.post(url, headers=headers, json=json_body)
    if r.status_code == 404 and mode == "model":
        # Model endpoint unavailable for this alias: resolve its latest version instead
        logger.info("Falling back to latest version resolution for model")
        model_resp = await client.get(f"{API_BASE}/models/{data['owner']}/{data['name']}", headers=_headers())
        model_resp.raise_for_status()
        version_id = (model_resp.json().get("latest_version") or {}).get("id")
        if not version_id:
            raise RuntimeError("Could not resolve latest version for model")
        logger.info(f"Resolved latest version: {version_id}")
        r = await client.post(f"{API_BASE}/predictions", headers=headers, json={**json_body, "version": version_id})
    if r.status_code >= 400:
        logger.error(f"Replicate create failed {r.status_code}: {r.text}")
        raise RuntimeError(f"Replicate create failed {r.status_code}: {r.text}")
    pred_id = r.json()["id"]
    logger.info(f"Replicate prediction created with ID: {pred_id}")
    return pred_id


async def create_and_wait_image(
    client: httpx.AsyncClient,
    prompt: str,
    poll_interval_s: float = REPLICATE_POLL_INTERVAL_MS / 1000.0,
    poll_timeout_s: float = REPLICATE_POLL_TIMEOUT_S,
) -> str:
    """Create a prediction and poll it until it finishes. Returns the output URL."""
    logger.info(f"Starting Replicate image generation for prompt: {prompt[:100]}...")
    pred_id = await _create_prediction(client, prompt)

    start = time.monotonic()
    while True:
        s = await client.get(f"{API_BASE}/predictions/{pred_id}", headers=_headers())
        if s.status_code >= 400:
            logger.error(f"Replicate status failed {s.status_code}: {s.text}")
            raise RuntimeError(f"Replicate status failed {s.status_code}: {s.text}")
        body = s.json()
        status = body.get("status")
        logger.debug(f"Replicate prediction {pred_id} status: {status}")

        if status in ("succeeded", "failed", "canceled"):
            if status != "succeeded":
                raise RuntimeError(f"Replicate failed: {status}. logs={body.get('logs')} error={body.get('error')}")
            output = body.get("output")
            if isinstance(output, list) and output:
                return output[0]
            if isinstance(output, str) and output:
                return output
            raise RuntimeError("Replicate succeeded but no output URL")
        if time.monotonic() - start > poll_timeout_s:
            raise TimeoutError("Replicate polling timeout")
        await asyncio.sleep(poll_interval_s)


class ReplicateImageGenerator:
    """Illustrations from a Replicate text-to-image model, returned as raw bytes."""

    def __init__(
        self,
        prompt_builder: Callable[[PageDescriptor], str],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval_s: float = REPLICATE_POLL_INTERVAL_MS / 1000.0,
        poll_timeout_s: float = REPLICATE_POLL_TIMEOUT_S,
    ):
        self.prompt_builder = prompt_builder
        self._transport = transport
        self.poll_interval_s = poll_interval_s
        self.poll_timeout_s = poll_timeout_s

    async def generate_image(self, page: PageDescriptor) -> bytes:
        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            url = await create_and_wait_image(
                client,
                self.prompt_builder(page),
                poll_interval_s=self.poll_interval_s,
                poll_timeout_s=self.poll_timeout_s,
            )
            logger.info(f"Got image URL from Replicate for page {page.page_number}: {url}")
            img = await client.get(url)
            img.raise_for_status()
            return img.content
