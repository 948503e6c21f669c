import logging
import textwrap

import pytest
import yaml

from mdx_translator.logging_config import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_package_logger():
    """
    load_app_config() attaches handlers to the package logger and turns off
    propagation; undo that after every test so tests stay independent.
    """
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def sample_document():
    """A document touching every construct the pipeline cares about."""
    return textwrap.dedent("""\
        ---
        title: Getting started
        sidebar_label: Start
        ---

        import Tabs from '@theme/Tabs';

        # Getting started

        Install the *CLI* and run **setup** with `init --force`.

        - First step
        - Read [the guide](https://example.com)

        :::tip[Pro tip]
        Use the `--verbose` flag.
        :::

        <Admonition title="Careful" type="warning">
          Back up your data first.
        </Admonition>

        ```bash
        npm install
        ```
        """)


@pytest.fixture
def quiet_config(tmp_path, monkeypatch):
    """
    Factory fixture: write a config with console and file logging disabled,
    apply ``overrides`` and point TRANSLATOR_CONFIG_FILE at it.
    """
    def _write(**overrides):
        config = {
            'dictionary_folder': str(tmp_path / 'dictionaries'),
            'forbidden_terms_file': str(tmp_path / 'forbidden_terms.yaml'),
            'logging': {'log_level': 'INFO', 'log_file_path': None, 'log_to_console': False},
        }
        config.update(overrides)
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump(config), encoding='utf-8')
        monkeypatch.setenv('TRANSLATOR_CONFIG_FILE', str(path))
        return path

    return _write
