from functools import partial
from typing import Callable, Dict

from .llm import OpenAIImageGenerator
from .models import PageDescriptor, StoryParameters
from .prompts import IMAGE_PROMPT_TEMPLATE
from .replicate_client import ReplicateImageGenerator

PromptBuilder = Callable[[PageDescriptor], str]

IMAGE_PROVIDERS: Dict[str, Callable[[PromptBuilder], object]] = {
    "replicate": ReplicateImageGenerator,
    "openai": OpenAIImageGenerator,
}


def build_image_prompt(params: StoryParameters, page: PageDescriptor) -> str:
    return IMAGE_PROMPT_TEMPLATE.format(
        age_range=params.age_range.value,
        theme=params.theme.value,
        character=params.character.describe(),
        scene=page.illustration_prompt or page.text,
    )


def get_image_generator(provider: str, params: StoryParameters):
    try:
        factory = IMAGE_PROVIDERS[provider]
    except KeyError:
        supported = ", ".join(sorted(IMAGE_PROVIDERS))
        raise ValueError(f"Unknown image provider {provider!r}; supported: {supported}") from None
    return factory(partial(build_image_prompt, params))
