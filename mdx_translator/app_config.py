"""Application configuration module for the documentation translator."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from mdx_translator.logging_config import setup_logger

module_logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = 'gemini-2.0-flash'
DEFAULT_BASE_URL = 'https://generativelanguage.googleapis.com/v1beta/openai/'
DEFAULT_API_KEY_ENV = 'GEMINI_API_KEY'

DEFAULT_LOCALES = [
    {'code': 'es', 'name': 'Spanish', 'script': 'latin'},
    {'code': 'fr', 'name': 'French', 'script': 'latin'},
    {'code': 'de', 'name': 'German', 'script': 'latin'},
    {'code': 'pt', 'name': 'Portuguese', 'script': 'latin'},
    {'code': 'it', 'name': 'Italian', 'script': 'latin'},
    {'code': 'ja', 'name': 'Japanese', 'script': 'cjk'},
    {'code': 'zh', 'name': 'Chinese (Simplified)', 'script': 'cjk'},
    {'code': 'ko', 'name': 'Korean', 'script': 'latin'},
]

CONFIG_SCHEMA: Dict[str, Any] = {
    'type': 'object',
    'properties': {
        'model_name': {'type': 'string', 'minLength': 1},
        'base_url': {'type': 'string', 'minLength': 1},
        'api_key_env': {'type': 'string', 'minLength': 1},
        'supported_locales': {
            'type': 'array',
            'items': {
                'type': 'object',
                'properties': {
                    'code': {'type': 'string', 'minLength': 1},
                    'name': {'type': 'string', 'minLength': 1},
                    'script': {'enum': ['latin', 'cjk']},
                },
                'required': ['code', 'name'],
            },
        },
        'frontmatter_keys': {'type': 'array', 'items': {'type': 'string'}},
        'component_attributes': {'type': 'array', 'items': {'type': 'string'}},
        'dictionary_folder': {'type': 'string'},
        'forbidden_terms_file': {'type': 'string'},
        'max_concurrent_api_calls': {'type': 'integer', 'minimum': 1},
        'requests_per_minute': {'type': 'number', 'exclusiveMinimum': 0},
        'stagger_seconds': {'type': 'number', 'minimum': 0},
        'batch_size': {'type': 'integer', 'minimum': 0},
        'max_attempts': {'type': 'integer', 'minimum': 1},
        'base_delay': {'type': 'number', 'minimum': 0},
        'max_delay': {'type': 'number', 'minimum': 0},
        'request_timeout': {'type': 'number', 'exclusiveMinimum': 0},
        'max_glossary_tokens': {'type': 'integer', 'minimum': 0},
        'dry_run': {'type': 'boolean'},
        'logging': {
            'type': 'object',
            'properties': {
                'log_level': {'type': 'string'},
                'log_file_path': {'type': ['string', 'null']},
                'log_to_console': {'type': 'boolean'},
            },
        },
    },
}


@dataclass(frozen=True)
class LanguageProfile:
    """A supported target language."""
    code: str
    name: str
    script: str = 'latin'

    @property
    def is_cjk(self) -> bool:
        return self.script == 'cjk'


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Model configuration
    model_name: str
    base_url: str
    api_key_env: str

    # Language configuration
    languages: Dict[str, LanguageProfile]
    frontmatter_keys: List[str]
    component_attributes: List[str]

    # Term files
    dictionary_folder: str
    forbidden_terms_file: str

    # Dispatch settings
    max_concurrent_api_calls: int = 4
    requests_per_minute: float = 60
    stagger_seconds: float = 0.02
    batch_size: int = 0

    # Retry settings
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    request_timeout: float = 60.0
    max_glossary_tokens: int = 1000

    dry_run: bool = False

    # OpenAI-compatible client
    openai_client: Optional[AsyncOpenAI] = field(default=None, repr=False)


def _load_dotenv_files(project_root: str) -> None:
    """Load the .env file from the working directory, if there is one."""
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load and validate the YAML configuration file, falling back to defaults on any problem."""
    # If TRANSLATOR_CONFIG_FILE is set (potentially from .env), use it; otherwise, default to 'config.yaml'.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config: Dict[str, Any] = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)

        if loaded_config is None:
            print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                  file=sys.stderr)
        elif isinstance(loaded_config, dict):
            jsonschema.validate(loaded_config, CONFIG_SCHEMA)
            config = loaded_config
            print(f"Successfully loaded configuration from: {config_file}", file=sys.stderr)
        else:
            print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                  file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except jsonschema.ValidationError as e:
        location = '.'.join(str(part) for part in e.absolute_path) or '<root>'
        print(f"Error: Invalid value for '{location}' in configuration file '{config_file}': {e.message}",
              file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/translation_log.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _build_language_profiles(locales_list: List[Dict[str, str]]) -> Dict[str, LanguageProfile]:
    """Build the code -> profile mapping from the supported locales."""
    languages: Dict[str, LanguageProfile] = {}
    for locale in locales_list:
        code = locale.get('code')
        name = locale.get('name')
        if code and name:
            languages[code] = LanguageProfile(code=code, name=name, script=locale.get('script', 'latin'))
    return languages


def create_openai_client(api_key_env: str, base_url: str, logger: logging.Logger) -> AsyncOpenAI:
    """
    Create the OpenAI-compatible client, exiting when the credential is missing.

    The client's own retry layer is disabled; retries are handled per request
    by the backoff translator.
    """
    api_key_from_env = os.environ.get(api_key_env)
    if not api_key_from_env:
        logger.critical(f"CRITICAL: {api_key_env} environment variable not found.")
        logger.critical(f"Please set {api_key_env} or enable dry_run mode in configuration.")
        sys.exit(1)

    try:
        client = AsyncOpenAI(api_key=api_key_from_env, base_url=base_url, max_retries=0)
        logger.info(f"API client initialized for {base_url}")
        return client
    except Exception as e:
        logger.critical(f"Failed to initialize API client: {str(e)}")
        sys.exit(1)


def load_app_config(project_root: Optional[str] = None, create_client: bool = True,
                    dry_run: Optional[bool] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        project_root: Directory holding ``.env`` and ``config.yaml``; defaults to the working directory.
        create_client: Whether to build the API client (skipped in dry-run mode).
        dry_run: Overrides the ``dry_run`` setting of the configuration file when not None.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = project_root or os.getcwd()

    _load_dotenv_files(project_root)
    config = _load_yaml_config(project_root)
    logger = _setup_logger_from_config(config)

    languages = _build_language_profiles(config.get('supported_locales', DEFAULT_LOCALES))
    if not languages:
        logger.warning("No usable supported_locales configured; falling back to the default locales.")
        languages = _build_language_profiles(DEFAULT_LOCALES)

    if dry_run is None:
        dry_run = config.get('dry_run', False)

    base_url = config.get('base_url', DEFAULT_BASE_URL)
    api_key_env = config.get('api_key_env', DEFAULT_API_KEY_ENV)

    openai_client = None
    if dry_run:
        logger.info("Running in dry-run mode, API client will not be initialized")
    elif create_client:
        openai_client = create_openai_client(api_key_env, base_url, logger)

    return AppConfig(
        model_name=config.get('model_name', DEFAULT_MODEL_NAME),
        base_url=base_url,
        api_key_env=api_key_env,
        languages=languages,
        frontmatter_keys=config.get('frontmatter_keys', ['title', 'description', 'sidebar_label', 'summary']),
        component_attributes=config.get('component_attributes', ['title', 'label', 'alt', 'placeholder', 'summary']),
        dictionary_folder=config.get('dictionary_folder', 'dictionaries'),
        forbidden_terms_file=config.get('forbidden_terms_file', 'forbidden_terms.yaml'),
        max_concurrent_api_calls=config.get('max_concurrent_api_calls', 4),
        requests_per_minute=config.get('requests_per_minute', 60),
        stagger_seconds=config.get('stagger_seconds', 0.02),
        batch_size=config.get('batch_size', 0),
        max_attempts=config.get('max_attempts', 5),
        base_delay=config.get('base_delay', 1.0),
        max_delay=config.get('max_delay', 60.0),
        request_timeout=config.get('request_timeout', 60.0),
        max_glossary_tokens=config.get('max_glossary_tokens', 1000),
        dry_run=dry_run,
        openai_client=openai_client
    )


def _read_yaml_file(path: str, required: bool, description: str) -> Tuple[bool, Any]:
    """Read a YAML file; returns ``(found, data)``. Exits when a required file is missing."""
    if not os.path.exists(path):
        if required:
            module_logger.critical(f"CRITICAL: {description} file '{path}' not found.")
            sys.exit(1)
        module_logger.info(f"No {description} file at '{path}'; continuing without one.")
        return False, None
    try:
        with open(path, 'r', encoding='utf-8') as stream:
            return True, yaml.safe_load(stream)
    except (yaml.YAMLError, OSError) as e:
        module_logger.warning(f"Could not load {description} file '{path}': {e}")
        return False, None


def load_term_dictionary(path: str, required: bool = False) -> Dict[str, str]:
    """
    Load a per-language term dictionary (source term -> required translation).

    Args:
        path: YAML file holding a mapping.
        required: Whether a missing file is fatal (the path was given explicitly).

    Returns:
        Dict[str, str]: The dictionary, empty when absent or malformed.
    """
    found, data = _read_yaml_file(path, required, 'dictionary')
    if not found or data is None:
        return {}
    if not isinstance(data, dict):
        module_logger.warning(f"Dictionary file '{path}' must contain a mapping; ignoring it.")
        return {}
    return {str(source): str(target) for source, target in data.items() if target is not None}


def load_forbidden_terms(path: str, required: bool = False) -> List[str]:
    """
    Load the list of terms that must never be translated.

    Args:
        path: YAML file holding a list of strings.
        required: Whether a missing file is fatal (the path was given explicitly).

    Returns:
        List[str]: The terms, empty when absent or malformed.
    """
    found, data = _read_yaml_file(path, required, 'forbidden terms')
    if not found or data is None:
        return []
    if not isinstance(data, list):
        module_logger.warning(f"Forbidden terms file '{path}' must contain a list; ignoring it.")
        return []
    return [str(term) for term in data if term is not None]
