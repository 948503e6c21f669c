import unittest

from mdx_translator.app_config import LanguageProfile
from mdx_translator.document_model import (
    CodeBlock, Html, InlineCode, Paragraph, Root, Text, Verbatim,
)
from mdx_translator.janitor import (
    JANITOR_RULES,
    TextContext,
    clean_text,
    collapse_spaces,
    normalize_parentheses,
    normalize_punctuation,
    run_janitor,
    space_after_raw_sibling,
    space_between_scripts,
    strip_quotes_around_code,
    unescape_markdown,
)

SPANISH = LanguageProfile(code='es', name='Spanish', script='latin')
JAPANESE = LanguageProfile(code='ja', name='Japanese', script='cjk')
CHINESE = LanguageProfile(code='zh', name='Chinese (Simplified)', script='cjk')


def context(profile, previous_sibling=None, next_sibling=None):
    return TextContext(previous_sibling=previous_sibling, next_sibling=next_sibling, profile=profile)


class TestJanitorRules(unittest.TestCase):

    def test_rules_run_in_documented_order(self):
        self.assertEqual(JANITOR_RULES, [
            unescape_markdown,
            strip_quotes_around_code,
            normalize_parentheses,
            space_after_raw_sibling,
            space_between_scripts,
            normalize_punctuation,
            collapse_spaces,
        ])

    def test_unescape_markdown(self):
        self.assertEqual(unescape_markdown('a \\_b \\`c\\`', context(SPANISH)), 'a _b `c`')
        self.assertEqual(unescape_markdown('keep \\* this', context(SPANISH)), 'keep \\* this')

    def test_strip_quotes_around_code(self):
        code = InlineCode('npm test')
        self.assertEqual(strip_quotes_around_code('Ejecuta "', context(SPANISH, next_sibling=code)), 'Ejecuta ')
        self.assertEqual(strip_quotes_around_code('」を実行', context(JAPANESE, previous_sibling=code)), 'を実行')
        self.assertEqual(strip_quotes_around_code('“ ahora', context(SPANISH, previous_sibling=code)), ' ahora')
        # Only code siblings count.
        self.assertEqual(strip_quotes_around_code('"x"', context(SPANISH, next_sibling=Html('<br/>'))), '"x"')

    def test_normalize_parentheses_cjk(self):
        self.assertEqual(normalize_parentheses('使用(默认)设置', context(CHINESE)), '使用（默认）设置')
        self.assertEqual(normalize_parentheses('第(1)章', context(CHINESE)), '第（1）章')
        self.assertEqual(normalize_parentheses('见（说明)', context(CHINESE)), '见（说明）')
        self.assertEqual(normalize_parentheses('调用(API)', context(CHINESE)), '调用(API)')

    def test_normalize_parentheses_latin(self):
        self.assertEqual(normalize_parentheses('Valor (por defecto）', context(SPANISH)), 'Valor (por defecto)')
        self.assertEqual(normalize_parentheses('Valor (por defecto)', context(SPANISH)), 'Valor (por defecto)')

    def test_space_after_raw_sibling(self):
        self.assertEqual(space_after_raw_sibling('es un valor', context(SPANISH, InlineCode('x'))), ' es un valor')
        self.assertEqual(space_after_raw_sibling('を設定', context(JAPANESE, Verbatim('log_dir'))), ' を設定')
        self.assertEqual(space_after_raw_sibling(', luego', context(SPANISH, InlineCode('x'))), ', luego')
        self.assertEqual(space_after_raw_sibling('es', context(SPANISH, Text('a'))), 'es')

    def test_space_between_scripts(self):
        self.assertEqual(space_between_scripts('使用Python3版本', context(CHINESE)), '使用 Python3 版本')
        self.assertEqual(space_between_scripts('运行', context(CHINESE, next_sibling=InlineCode('x'))), '运行 ')
        self.assertEqual(space_between_scripts('usar Python3', context(SPANISH)), 'usar Python3')

    def test_normalize_punctuation_cjk(self):
        self.assertEqual(normalize_punctuation('完成.', context(CHINESE)), '完成。')
        self.assertEqual(normalize_punctuation('真的?', context(CHINESE)), '真的？')
        self.assertEqual(normalize_punctuation('完成. 下一步', context(CHINESE)), '完成。下一步')
        self.assertEqual(normalize_punctuation('文件.txt', context(CHINESE)), '文件.txt')
        self.assertEqual(normalize_punctuation('版本 1.2', context(CHINESE)), '版本 1.2')

    def test_normalize_punctuation_latin(self):
        self.assertEqual(normalize_punctuation('Hola，mundo。', context(SPANISH)), 'Hola, mundo.')
        self.assertEqual(normalize_punctuation('Ver “Inicio”', context(SPANISH)), 'Ver "Inicio"')
        self.assertEqual(normalize_punctuation('Pulsa 「Guardar」', context(SPANISH)), 'Pulsa "Guardar"')

    def test_collapse_spaces(self):
        self.assertEqual(collapse_spaces('a   b  c', context(SPANISH)), 'a b c')


class TestJanitorIdempotence(unittest.TestCase):

    SAMPLES = [
        ('“Hola”（mundo)，adiós!', SPANISH, InlineCode('x'), Html('<br/>')),
        ('Ver la sección  「Inicio」。Luego', SPANISH, None, None),
        ('これはtest(1)です.', JAPANESE, Verbatim('log_dir'), InlineCode('y')),
        ('运行「', CHINESE, None, InlineCode('npm test')),
        ('」之后,再试一次!', CHINESE, InlineCode('npm test'), None),
        ('a \\_b \\\\`c', SPANISH, None, None),
        ('使用(默认)设置. 然后 配置Docker。', CHINESE, None, None),
    ]

    def test_clean_text_twice_equals_once(self):
        for text, profile, previous_sibling, next_sibling in self.SAMPLES:
            with self.subTest(text=text):
                ctx = context(profile, previous_sibling, next_sibling)
                once = clean_text(text, ctx)
                self.assertEqual(clean_text(once, ctx), once)

    def test_run_janitor_twice_changes_nothing_the_second_time(self):
        root = Root(children=[Paragraph(children=[
            Text('Ejecuta "'), InlineCode('npm test'), Text('" ahora，luego  sigue。'),
        ])])

        self.assertEqual(run_janitor(root, SPANISH), 2)
        self.assertEqual(root.children[0].children, [
            Text('Ejecuta '), InlineCode('npm test'), Text(' ahora, luego sigue.'),
        ])
        self.assertEqual(run_janitor(root, SPANISH), 0)


class TestRunJanitor(unittest.TestCase):

    def test_code_is_left_alone(self):
        root = Root(children=[
            CodeBlock(value='print("a")  ;  x=1'),
            Paragraph(children=[InlineCode('a  b'), Text('x')]),
        ])

        run_janitor(root, CHINESE)

        self.assertEqual(root.children[0].value, 'print("a")  ;  x=1')
        self.assertEqual(root.children[1].children, [InlineCode('a  b'), Text(' x')])


if __name__ == '__main__':
    unittest.main()
