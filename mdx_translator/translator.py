"""Single-string translation with exponential backoff and a run-scoped cache."""
import asyncio
import logging
import random
from contextlib import nullcontext
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple

import tiktoken
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnprocessableEntityError,
)
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from mdx_translator.app_config import LanguageProfile
from mdx_translator.translation_validator import validate_translation

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 422})
# Provider messages that mean "slow down" even when the status code does not say so.
RETRYABLE_MARKERS = ("RESOURCE_EXHAUSTED", "Overloaded")

QUOTE_PAIRS = {
    '"': '"',
    "'": "'",
    '“': '”',
    '‘': '’',
    '«': '»',
    '「': '」',
    '『': '』',
}


class RetryDecision(Enum):
    RETRY = "retry"
    GIVE_UP = "give_up"
    UNKNOWN = "unknown"


def classify_error(exc: BaseException) -> RetryDecision:
    """
    Decide whether a failed completion request is worth retrying.

    Rate limits, overloads, server errors, timeouts and dropped connections
    are retried. Client errors (bad request, auth, permission, not found,
    unprocessable) are not. Anything else is unknown and is not retried either.
    """
    if isinstance(exc, (BadRequestError, AuthenticationError, PermissionDeniedError,
                        NotFoundError, UnprocessableEntityError)):
        return RetryDecision.GIVE_UP
    # APITimeoutError is a subclass of APIConnectionError.
    if isinstance(exc, (RateLimitError, InternalServerError, APIConnectionError)):
        return RetryDecision.RETRY
    if isinstance(exc, APIStatusError):
        if exc.status_code in RETRYABLE_STATUS_CODES:
            return RetryDecision.RETRY
        if exc.status_code in NON_RETRYABLE_STATUS_CODES:
            return RetryDecision.GIVE_UP
    if any(marker in str(exc) for marker in RETRYABLE_MARKERS):
        return RetryDecision.RETRY
    return RetryDecision.UNKNOWN


class TranslationCache:
    """
    Maps (language code, source text) to a translation.

    One instance lives for one run; only successful translations are stored.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], str] = {}

    def get(self, language_code: str, text: str) -> Optional[str]:
        return self._entries.get((language_code, text))

    def store(self, language_code: str, text: str, translation: str) -> None:
        self._entries[(language_code, text)] = translation

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def count_tokens(text: str, model_name: str = 'gpt-3.5-turbo') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken`` only knows OpenAI model names and may try to download
    encoding data. Unknown models and offline environments fall back to the
    ``gpt2`` encoding and, as a last resort, to a whitespace split.
    """

    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def build_glossary_text(dictionary: Dict[str, str], max_tokens: int, model_name: str) -> str:
    """
    Render the term dictionary for the prompt, stopping at ``max_tokens``.

    Args:
        dictionary: Source term -> required translation.
        max_tokens: Token budget for the whole glossary block.
        model_name: Model used to pick the tokenizer.

    Returns:
        str: One ``"term" should be translated as "translation"`` line per entry that fits.
    """
    entries = []
    total_tokens = 0
    for source_term, target_term in dictionary.items():
        entry = f'"{source_term}" should be translated as "{target_term}"'
        entry_tokens = count_tokens(entry, model_name)
        if total_tokens + entry_tokens > max_tokens:
            logger.debug(f"Glossary truncated at {len(entries)} entries to stay within {max_tokens} tokens.")
            break
        entries.append(entry)
        total_tokens += entry_tokens
    return '\n'.join(entries)


def build_system_prompt(language_name: str, glossary_text: str, forbidden_terms: Iterable[str]) -> str:
    """Build the fixed instruction prompt sent with every request."""
    prompt = f"""Translate the following technical documentation text into {language_name}.

RULES:
1. Do NOT add explanations, quotes, or conversational filler.
2. Do NOT add new Markdown formatting (like bold, italic, or backticks) if it was not in the original text.
3. Maintain all existing Markdown syntax, variables, placeholders in curly braces, and formatting exactly.
4. Reply with the translation only.
"""
    if glossary_text:
        prompt += f"\n**Translation Glossary (use these translations):**\n{glossary_text}\n"
    forbidden_text = '\n'.join(f"- {term}" for term in dict.fromkeys(forbidden_terms))
    if forbidden_text:
        prompt += f"\n**Do NOT translate these terms:**\n{forbidden_text}\n"
    return prompt


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Strip what the model wrapped around the translation.

    One layer of surrounding quotes is removed unless the original was quoted
    the same way, and one layer of backticks is removed unless the original
    started with a backtick.

    Args:
        translated_text: The raw model reply.
        original_text: The text that was sent for translation.

    Returns:
        str: The cleaned translation.
    """
    text = translated_text.strip()
    original = original_text.strip()

    if len(text) >= 2:
        closing = QUOTE_PAIRS.get(text[0])
        if closing and text.endswith(closing) and not original.startswith(text[0]):
            text = text[1:-1].strip()

    if len(text) >= 2 and text.startswith('`') and text.endswith('`') and not original.startswith('`'):
        text = text[1:-1]

    return text


def _preview(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[:limit] + '...'


class BackoffTranslator:
    """
    Translates one string at a time and never raises.

    Every failure path returns the original string: non-retryable and
    unknown errors immediately, retryable ones after ``max_attempts``.
    """

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            language: LanguageProfile,
            cache: TranslationCache,
            *,
            glossary: Optional[Dict[str, str]] = None,
            forbidden_terms: Iterable[str] = (),
            max_attempts: int = 5,
            base_delay: float = 1.0,
            max_delay: float = 60.0,
            jitter: float = 1.0,
            request_timeout: float = 60.0,
            max_glossary_tokens: int = 1000,
            semaphore: Optional[asyncio.Semaphore] = None,
            rate_limiter: Optional[AsyncLimiter] = None,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> None:
        self.client = client
        self.model_name = model_name
        self.language = language
        self.cache = cache
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.request_timeout = request_timeout
        self.semaphore = semaphore
        self.rate_limiter = rate_limiter
        self._sleep = sleep

        glossary_text = build_glossary_text(glossary or {}, max_glossary_tokens, model_name)
        self.system_prompt = build_system_prompt(language.name, glossary_text, forbidden_terms)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
        return min((2 ** attempt) * self.base_delay + random.uniform(0, self.jitter), self.max_delay)

    async def _request(self, text: str) -> Optional[str]:
        # One concurrency slot and one rate token per attempt.
        async with self.semaphore or nullcontext(), self.rate_limiter or nullcontext():
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    ChatCompletionSystemMessageParam(role="system", content=self.system_prompt),
                    ChatCompletionUserMessageParam(role="user", content=f'Text: "{text}"\nTranslation:'),
                ],
                temperature=0.3,
                timeout=self.request_timeout,
            )
        return response.choices[0].message.content

    async def translate(self, text: str) -> str:
        """
        Translate ``text`` into the configured language.

        Args:
            text: The source string. Its leading and trailing whitespace is kept
                out of the request and re-attached to the result.

        Returns:
            str: The translation, or ``text`` unchanged when translation failed.
        """
        if not text or not text.strip():
            return text

        cached = self.cache.get(self.language.code, text)
        if cached is not None:
            return cached

        core = text.strip()
        leading = text[:len(text) - len(text.lstrip())]
        trailing = text[len(text.rstrip()):]

        attempt = 0
        while attempt < self.max_attempts:
            try:
                reply = await self._request(core)
            except Exception as exc:
                decision = classify_error(exc)
                if decision is RetryDecision.GIVE_UP:
                    logger.warning(f"Non-retryable API error ({exc.__class__.__name__}) for {_preview(core)!r}; "
                                   "keeping the original text.")
                    return text
                if decision is RetryDecision.UNKNOWN:
                    logger.warning(f"Unexpected error ({exc.__class__.__name__}: {exc}) for {_preview(core)!r}; "
                                   "keeping the original text.")
                    return text

                attempt += 1
                if attempt >= self.max_attempts:
                    logger.warning(f"Translation of {_preview(core)!r} failed after {attempt} attempts; "
                                   "keeping the original text.")
                    return text
                delay = self.backoff_delay(attempt)
                logger.info(f"{exc.__class__.__name__} for {_preview(core)!r}. "
                            f"Retrying in {delay:.2f} seconds (Attempt {attempt}/{self.max_attempts})")
                await self._sleep(delay)
                continue

            translated = clean_translated_text(reply or '', core)
            if not translated.strip():
                logger.warning(f"Empty translation returned for {_preview(core)!r}; keeping the original text.")
                return text

            errors = validate_translation(core, translated)
            if errors:
                logger.warning(f"Rejected translation for {_preview(core)!r}: {'; '.join(errors)}")
                return text

            result = f"{leading}{translated}{trailing}"
            self.cache.store(self.language.code, text, result)
            return result

        return text
