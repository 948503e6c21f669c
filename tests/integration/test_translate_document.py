"""
Integration tests for the ``mdx-translate`` command.

The API client is replaced with a mock; everything else (config loading,
parsing, dispatch, janitor, serialization and file output) runs for real.
"""
import asyncio
import re
import textwrap
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from mdx_translator.markdown_parser import parse_document
from mdx_translator.markdown_serializer import serialize_document
from mdx_translator.translate_document import (
    collect_input_files,
    is_translation_output,
    main,
    output_path_for,
    write_output,
)

SPANISH_REPLIES = {
    'Getting started': 'Primeros pasos',
    'Start': 'Inicio',
    'Careful': 'Cuidado',
    'Hello world': 'Hola mundo',
    'Back up your data first.': 'Haz una copia de seguridad primero.',
}


def fake_completion(**kwargs):
    """Answer like the provider would, using a fixed phrase book."""
    prompt = kwargs['messages'][1]['content']
    text = re.match(r'Text: "(.*)"\nTranslation:', prompt, re.DOTALL).group(1)
    reply = SPANISH_REPLIES.get(text, text)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


@pytest.fixture
def mock_openai(monkeypatch):
    monkeypatch.setenv('GEMINI_API_KEY', 'test-key')
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=fake_completion)
    with patch('mdx_translator.app_config.AsyncOpenAI', return_value=client):
        yield client


def run_cli(*argv):
    return asyncio.run(main(list(argv)))


class TestOutputNaming:

    def test_output_path_for(self):
        assert output_path_for('docs/intro.mdx', 'es') == 'docs/intro.es.mdx'
        assert output_path_for('README.md', 'ja') == 'README.ja.md'

    def test_is_translation_output(self):
        assert is_translation_output('intro.es.mdx', ['es', 'fr'])
        assert not is_translation_output('intro.mdx', ['es', 'fr'])
        assert not is_translation_output('v1.2.md', ['es', 'fr'])

    def test_collect_input_files_skips_outputs_and_other_files(self, tmp_path):
        for name in ('b.mdx', 'a.md', 'a.es.md', 'notes.txt'):
            (tmp_path / name).write_text('x\n', encoding='utf-8')
        (tmp_path / 'nested.md').mkdir()

        files = collect_input_files(str(tmp_path), ['es'])

        assert files == [str(tmp_path / 'a.md'), str(tmp_path / 'b.mdx')]

    def test_collect_input_files_single_file(self, tmp_path):
        path = str(tmp_path / 'intro.mdx')
        assert collect_input_files(path, ['es']) == [path]


class TestWriteOutput:

    def test_replaces_existing_file(self, tmp_path):
        target = tmp_path / 'intro.es.mdx'
        target.write_text('old\n', encoding='utf-8')

        write_output(str(target), 'Hola\n')

        assert target.read_text(encoding='utf-8') == 'Hola\n'
        assert [p.name for p in tmp_path.iterdir()] == ['intro.es.mdx']

    def test_failed_write_leaves_target_untouched(self, tmp_path):
        target = tmp_path / 'intro.es.mdx'
        target.write_text('old\n', encoding='utf-8')

        with patch('mdx_translator.translate_document.os.replace', side_effect=OSError('disk full')):
            with pytest.raises(OSError):
                write_output(str(target), 'Hola\n')

        assert target.read_text(encoding='utf-8') == 'old\n'
        assert [p.name for p in tmp_path.iterdir()] == ['intro.es.mdx']


class TestTranslateCommand:

    def test_translates_document(self, tmp_path, quiet_config, mock_openai, sample_document):
        quiet_config()
        source = tmp_path / 'intro.mdx'
        source.write_text(sample_document, encoding='utf-8')

        assert run_cli(str(source), 'es', '--no-progress') == 0

        output = (tmp_path / 'intro.es.mdx').read_text(encoding='utf-8')
        root = parse_document(output)
        front_matter = yaml.safe_load(root.children[0].value)
        assert front_matter == {'title': 'Primeros pasos', 'sidebar_label': 'Inicio'}
        assert '# Primeros pasos' in output
        assert '<Admonition title="Cuidado" type="warning">' in output
        assert '  Haz una copia de seguridad primero.' in output
        assert "import Tabs from '@theme/Tabs';" in output
        assert '```bash\nnpm install\n```' in output
        assert '`init --force`' in output

        sent = [call.kwargs['messages'][1]['content'] for call in mock_openai.chat.completions.create.await_args_list]
        assert not any('npm install' in prompt or 'init --force' in prompt for prompt in sent)

    def test_dictionary_and_forbidden_terms_reach_the_prompt(self, tmp_path, quiet_config, mock_openai):
        quiet_config()
        (tmp_path / 'dictionaries').mkdir()
        (tmp_path / 'dictionaries' / 'es.yaml').write_text('sidebar: barra lateral\n', encoding='utf-8')
        (tmp_path / 'forbidden_terms.yaml').write_text('- Docusaurus\n', encoding='utf-8')
        source = tmp_path / 'page.md'
        source.write_text('Hello world\n', encoding='utf-8')

        assert run_cli(str(source), 'es', '--no-progress', '--batch-size', '2') == 0

        system_prompt = mock_openai.chat.completions.create.await_args.kwargs['messages'][0]['content']
        assert '"sidebar" should be translated as "barra lateral"' in system_prompt
        assert '- Docusaurus' in system_prompt
        assert (tmp_path / 'page.es.md').read_text(encoding='utf-8') == 'Hola mundo\n'

    def test_dry_run_writes_round_tripped_document(self, tmp_path, quiet_config, monkeypatch, sample_document):
        quiet_config()
        monkeypatch.delenv('GEMINI_API_KEY', raising=False)
        source = tmp_path / 'intro.mdx'
        source.write_text(sample_document, encoding='utf-8')

        assert run_cli(str(source), 'es', '--dry-run', '--no-progress') == 0

        output = (tmp_path / 'intro.es.mdx').read_text(encoding='utf-8')
        assert output == serialize_document(parse_document(sample_document))

    def test_unsupported_language_exits_before_any_output(self, tmp_path, quiet_config, mock_openai):
        quiet_config()
        source = tmp_path / 'intro.mdx'
        source.write_text('Hello world\n', encoding='utf-8')

        with pytest.raises(SystemExit) as exc_info:
            run_cli(str(source), 'xx')

        assert exc_info.value.code == 1
        assert not (tmp_path / 'intro.xx.mdx').exists()
        mock_openai.chat.completions.create.assert_not_awaited()

    def test_missing_credential_exits(self, tmp_path, quiet_config, monkeypatch):
        quiet_config()
        monkeypatch.delenv('GEMINI_API_KEY', raising=False)
        source = tmp_path / 'intro.mdx'
        source.write_text('Hello world\n', encoding='utf-8')

        with pytest.raises(SystemExit) as exc_info:
            run_cli(str(source), 'es')

        assert exc_info.value.code == 1
        assert not (tmp_path / 'intro.es.mdx').exists()

    def test_missing_explicit_dictionary_exits(self, tmp_path, quiet_config, mock_openai):
        quiet_config()
        source = tmp_path / 'intro.mdx'
        source.write_text('Hello world\n', encoding='utf-8')

        with pytest.raises(SystemExit):
            run_cli(str(source), 'es', '--dictionary', str(tmp_path / 'nope.yaml'))

    def test_directory_mode_isolates_failures(self, tmp_path, quiet_config):
        quiet_config()
        docs = tmp_path / 'docs'
        docs.mkdir()
        (docs / 'good.mdx').write_text('# Good\n', encoding='utf-8')
        (docs / 'bad.mdx').write_text(textwrap.dedent("""\
            <Tabs>

            Never closed.
            """), encoding='utf-8')
        (docs / 'old.es.mdx').write_text('# Viejo\n', encoding='utf-8')

        assert run_cli(str(docs), 'es', '--dry-run', '--no-progress') == 1

        assert (docs / 'good.es.mdx').read_text(encoding='utf-8') == '# Good\n'
        assert not (docs / 'bad.es.mdx').exists()
        assert not (docs / 'old.es.es.mdx').exists()

    def test_missing_input_file_fails(self, tmp_path, quiet_config):
        quiet_config()

        assert run_cli(str(tmp_path / 'absent.mdx'), 'es', '--dry-run') == 1

    def test_provider_errors_keep_original_text(self, tmp_path, quiet_config, mock_openai):
        import httpx
        from openai import AuthenticationError

        quiet_config()
        request = httpx.Request('POST', 'https://example.test')
        mock_openai.chat.completions.create.side_effect = AuthenticationError(
            'invalid key', response=httpx.Response(401, request=request), body=None)
        source = tmp_path / 'page.md'
        source.write_text('Hello world\n', encoding='utf-8')

        assert run_cli(str(source), 'es', '--no-progress') == 0
        assert (tmp_path / 'page.es.md').read_text(encoding='utf-8') == 'Hello world\n'

    def test_failed_write_keeps_previous_output(self, tmp_path, quiet_config):
        quiet_config()
        source = tmp_path / 'page.md'
        source.write_text('# New\n', encoding='utf-8')
        (tmp_path / 'page.es.md').write_text('# Viejo\n', encoding='utf-8')

        with patch('mdx_translator.translate_document.os.replace', side_effect=OSError('disk full')):
            assert run_cli(str(source), 'es', '--dry-run', '--no-progress') == 1

        assert (tmp_path / 'page.es.md').read_text(encoding='utf-8') == '# Viejo\n'
        assert not list(tmp_path.glob('.page.es.md*'))
