import os, json, asyncio, logging
from typing import Optional

from pydantic import ValidationError

from .errors import GenerationError
from .models import PageDescriptor, StoryOutline, StoryParameters
from .prompts import PAGES_BY_LENGTH, STORY_SCHEMA, SYSTEM_PROMPT, USER_PROMPT_TEMPLATE
from .settings import IMAGE_SIZE, OPENAI_IMAGE_MODEL, STORY_LLM_MAX_TOKENS, STORY_LLM_MODEL, STORY_LLM_TEMPERATURE

logger = logging.getLogger(__name__)

_client = None


def _get_client():
    global _client
    if _client is None:
        from openai import OpenAI
        api_key = os.getenv("OPENAI_API_KEY", "")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is not set; please configure your .env")
        _client = OpenAI(api_key=api_key)
    return _client


def build_user_prompt(params: StoryParameters) -> str:
    return USER_PROMPT_TEMPLATE.format(
        age_range=params.age_range.value,
        theme=params.theme.value,
        length=params.length.value,
        pages=PAGES_BY_LENGTH[params.length.value],
        character=params.character.describe(),
        schema=STORY_SCHEMA,
    )


def get_story_outline(params: StoryParameters, client=None) -> StoryOutline:
    logger.info("Calling OpenAI API to generate story outline")
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(params)},
    ]
    client = client or _get_client()
    resp = client.chat.completions.create(
        model=STORY_LLM_MODEL,
        messages=messages,
        temperature=STORY_LLM_TEMPERATURE,
        max_tokens=STORY_LLM_MAX_TOKENS,
        response_format={"type": "json_object"},
    )
    content = resp.choices[0].message.content
    logger.info(f"Received story outline from OpenAI (finish_reason={resp.choices[0].finish_reason})")
    try:
        outline = StoryOutline.model_validate(json.loads(content))
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        raise GenerationError(f"story writer returned an invalid outline: {e}") from e
    logger.info(f"Story '{outline.title}' has {len(outline.pages)} pages")
    return outline


class OpenAIImageGenerator:
    """Illustrations from the OpenAI images API, returned as base64 text."""

    def __init__(self, prompt_builder, model: str = OPENAI_IMAGE_MODEL, size: str = IMAGE_SIZE, client=None):
        self.prompt_builder = prompt_builder
        self.model = model
        self.size = size
        self._client = client

    async def generate_image(self, page: PageDescriptor) -> Optional[str]:
        client = self._client or _get_client()
        prompt = self.prompt_builder(page)
        logger.info(f"Requesting image from OpenAI for page {page.page_number}")
        resp = await asyncio.to_thread(
            client.images.generate,
            model=self.model,
            prompt=prompt,
            n=1,
            size=self.size,
            response_format="b64_json",
        )
        return resp.data[0].b64_json
