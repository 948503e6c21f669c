"""
Translate a Markdown/MDX document (or every document in a folder) into one
target language.

Usage:
    mdx-translate docs/intro.mdx es
    python -m mdx_translator.translate_document docs/ ja --batch-size 10
"""
import argparse
import asyncio
import logging
import os
import sys
import tempfile
from typing import Iterable, List, Optional, Sequence

from aiolimiter import AsyncLimiter

from mdx_translator.app_config import (
    AppConfig,
    LanguageProfile,
    create_openai_client,
    load_app_config,
    load_forbidden_terms,
    load_term_dictionary
)
from mdx_translator.collector import collect_translatable_units
from mdx_translator.dispatcher import dispatch_translations
from mdx_translator.janitor import run_janitor
from mdx_translator.markdown_parser import parse_document
from mdx_translator.markdown_serializer import serialize_document
from mdx_translator.translator import BackoffTranslator, TranslationCache
from mdx_translator.variable_guard import protect_variables

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = ('.md', '.mdx')


def output_path_for(input_path: str, language_code: str) -> str:
    """``docs/intro.mdx`` -> ``docs/intro.es.mdx``."""
    stem, extension = os.path.splitext(input_path)
    return f"{stem}.{language_code}{extension}"


def is_translation_output(file_name: str, language_codes: Iterable[str]) -> bool:
    """Whether ``file_name`` looks like ``<stem>.<code>.<ext>`` for a supported code."""
    stem = os.path.splitext(os.path.basename(file_name))[0]
    _, dot, suffix = stem.rpartition('.')
    return bool(dot) and suffix in set(language_codes)


def write_output(output_path: str, content: str) -> None:
    """Write ``content`` to a temporary file beside ``output_path``, then swap it into place."""
    folder = os.path.dirname(output_path) or '.'
    temp_f = tempfile.NamedTemporaryFile(mode='w', delete=False, dir=folder, suffix='.tmp',
                                         prefix='.' + os.path.basename(output_path), encoding='utf-8')
    try:
        with temp_f:
            temp_f.write(content)
        os.replace(temp_f.name, output_path)
    except BaseException:
        if os.path.exists(temp_f.name):
            os.remove(temp_f.name)
        raise


def collect_input_files(input_path: str, language_codes: Iterable[str]) -> List[str]:
    """
    Resolve the command-line input to the list of documents to translate.

    A folder yields every ``.md``/``.mdx`` file directly inside it, skipping
    files that are themselves translation outputs. Anything else is returned
    as a single-item list; errors opening it surface when it is processed.
    """
    if not os.path.isdir(input_path):
        return [input_path]

    language_codes = set(language_codes)
    files = []
    for file_name in sorted(os.listdir(input_path)):
        file_path = os.path.join(input_path, file_name)
        if not os.path.isfile(file_path) or not file_name.lower().endswith(DOCUMENT_EXTENSIONS):
            continue
        if is_translation_output(file_name, language_codes):
            logger.debug(f"Skipping translation output '{file_name}'.")
            continue
        files.append(file_path)
    return files


async def translate_file(
        input_path: str,
        language: LanguageProfile,
        translator: Optional[BackoffTranslator],
        config: AppConfig,
        *,
        batch_size: int = 0,
        stagger_seconds: float = 0.02,
        show_progress: bool = True
) -> Optional[str]:
    """
    Run the whole pipeline for one document and write ``<stem>.<code><ext>``.

    Parse, collect, dispatch, clean, guard identifiers, serialize, write.
    With no translator (dry run) the dispatch step is skipped. Any error is
    logged and reported as a failure; nothing is written in that case.

    Returns:
        Optional[str]: The output path, or None when the document failed.
    """
    try:
        with open(input_path, 'r', encoding='utf-8') as f:
            source = f.read()

        root = parse_document(source)
        units = collect_translatable_units(root, config.frontmatter_keys, config.component_attributes)
        logger.info(f"Found {len(units)} items to translate.")

        if translator is None:
            logger.info(f"[Dry Run] Skipping translation requests for '{input_path}'.")
        elif units:
            await dispatch_translations(
                units,
                translator,
                stagger_seconds=stagger_seconds,
                batch_size=batch_size,
                description=f"Translating {os.path.basename(input_path)}",
                show_progress=show_progress
            )

        cleaned = run_janitor(root, language)
        guarded = protect_variables(root)
        logger.debug(f"Janitor changed {cleaned} text node(s); {guarded} identifier(s) kept verbatim.")

        output = serialize_document(root)
        output_path = output_path_for(input_path, language.code)
        write_output(output_path, output)
        logger.info(f"Saved translation to: {output_path}")
        return output_path
    except Exception as e:
        logger.error(f"Failed to translate '{input_path}': {e}")
        return None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mdx-translate',
        description='Translate Markdown/MDX documentation with an LLM, keeping code and markup intact.'
    )
    parser.add_argument('input_path', help='A .md/.mdx file, or a folder of them.')
    parser.add_argument('language_code', help='Target language code, e.g. es or ja.')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Translate in batches of this size instead of staggered requests.')
    parser.add_argument('--stagger', type=float, default=None,
                        help='Seconds between request starts in staggered mode.')
    parser.add_argument('--dictionary', default=None,
                        help='YAML term dictionary (defaults to <dictionary_folder>/<code>.yaml).')
    parser.add_argument('--forbidden-terms', default=None,
                        help='YAML list of terms that must not be translated.')
    parser.add_argument('--dry-run', action='store_true',
                        help='Parse and rewrite documents without calling the API.')
    parser.add_argument('--no-progress', action='store_true', help='Hide the progress bar.')
    return parser


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main function to orchestrate the translation process.

    Returns:
        int: 0 when every document was written, 1 when any failed.
    """
    args = build_arg_parser().parse_args(argv)
    config = load_app_config(create_client=False, dry_run=True if args.dry_run else None)

    language = config.languages.get(args.language_code)
    if language is None:
        logger.critical(f"CRITICAL: Unsupported language code '{args.language_code}'. "
                        f"Supported codes: {', '.join(config.languages)}")
        sys.exit(1)

    translator = None
    if not config.dry_run:
        semaphore = asyncio.Semaphore(config.max_concurrent_api_calls)
        rate_limiter = AsyncLimiter(max_rate=config.requests_per_minute, time_period=60)
        client = create_openai_client(config.api_key_env, config.base_url, logger)
        dictionary_path = args.dictionary or os.path.join(config.dictionary_folder, f"{language.code}.yaml")
        glossary = load_term_dictionary(dictionary_path, required=args.dictionary is not None)
        forbidden_terms = load_forbidden_terms(args.forbidden_terms or config.forbidden_terms_file,
                                               required=args.forbidden_terms is not None)
        translator = BackoffTranslator(
            client,
            config.model_name,
            language,
            TranslationCache(),
            glossary=glossary,
            forbidden_terms=forbidden_terms,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            request_timeout=config.request_timeout,
            max_glossary_tokens=config.max_glossary_tokens,
            semaphore=semaphore,
            rate_limiter=rate_limiter
        )

    batch_size = args.batch_size if args.batch_size is not None else config.batch_size
    stagger_seconds = args.stagger if args.stagger is not None else config.stagger_seconds

    input_files = collect_input_files(args.input_path, config.languages)
    if not input_files:
        logger.warning(f"No .md or .mdx files found in '{args.input_path}'.")
        return 0

    failed_files = []
    for input_file in input_files:
        logger.info(f"Processing '{input_file}' for language '{language.name}'...")
        output_path = await translate_file(
            input_file,
            language,
            translator,
            config,
            batch_size=batch_size,
            stagger_seconds=stagger_seconds,
            show_progress=not args.no_progress
        )
        if output_path is None:
            failed_files.append(input_file)

    if failed_files:
        logger.error(f"{len(failed_files)} of {len(input_files)} file(s) could not be translated:")
        for failed_file in failed_files:
            logger.error(f"  - {failed_file}")
        return 1
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
