"""Lists the models available to the configured API key that can generate text."""
import asyncio
import logging
import sys
from typing import Any, List, Tuple

from openai import APIError, AsyncOpenAI

from mdx_translator.app_config import create_openai_client, load_app_config

logger = logging.getLogger(__name__)

# Catalog entries without declared generation methods are filtered by id.
NON_TEXT_MODEL_MARKERS = ('embedding', 'aqa', 'tts', 'whisper', 'imagen', 'image-generation', 'veo', 'dall-e')


def _extra(model: Any) -> dict:
    return getattr(model, 'model_extra', None) or {}


def supports_text_generation(model: Any) -> bool:
    """Whether a catalog entry can be used for chat completions."""
    extra = _extra(model)
    methods = extra.get('supported_generation_methods') or extra.get('supportedGenerationMethods')
    if methods is not None:
        return 'generateContent' in methods
    model_id = model.id.lower()
    return not any(marker in model_id for marker in NON_TEXT_MODEL_MARKERS)


def display_name(model: Any) -> str:
    extra = _extra(model)
    return extra.get('display_name') or extra.get('displayName') or model.id


async def list_generative_models(client: AsyncOpenAI) -> List[Tuple[str, str]]:
    """
    Fetch the provider catalog and keep the text-generation models.

    Returns:
        List[Tuple[str, str]]: ``(model id, display name)`` pairs in catalog order.
    """
    page = await client.models.list()
    return [(model.id, display_name(model)) for model in page.data if supports_text_generation(model)]


async def main() -> int:
    config = load_app_config(create_client=False, dry_run=False)
    client = create_openai_client(config.api_key_env, config.base_url, logger)

    logger.info(f"Querying the model catalog at {config.base_url} ...")
    try:
        models = await list_generative_models(client)
    except APIError as e:
        print(f"API returned an error: {e}", file=sys.stderr)
        print("Your API key might be invalid or has no access.", file=sys.stderr)
        return 0

    if not models:
        print("No text-generation models found. You might only have access to embedding models.")
        return 0

    print("Available models for your key:")
    print("=" * 33)
    for model_id, name in models:
        print(f"Name: {model_id}")
        print(f"Desc: {name}")
        print("-" * 33)
    print(f"Copy one of the names above into 'model_name' in config.yaml (currently '{config.model_name}').")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
