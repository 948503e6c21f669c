import unittest

from mdx_translator.collector import collect_translatable_units
from mdx_translator.document_model import CodeBlock, Expression, InlineCode, Paragraph, Root, Text, Verbatim
from mdx_translator.markdown_parser import parse_document
from mdx_translator.markdown_serializer import serialize_document
from mdx_translator.variable_guard import protect_variables, split_identifiers


class TestSplitIdentifiers(unittest.TestCase):

    def test_identifier_in_the_middle_of_a_sentence(self):
        self.assertEqual(split_identifiers('see sys_log_dir and other text'), [
            Text('see '), Verbatim('sys_log_dir'), Text(' and other text'),
        ])

    def test_multiple_identifiers_keep_their_order(self):
        self.assertEqual(split_identifiers('max_size, then min_size_2'), [
            Verbatim('max_size'), Text(', then '), Verbatim('min_size_2'),
        ])

    def test_text_without_underscore_is_untouched(self):
        self.assertEqual(split_identifiers('plain words only'), [Text('plain words only')])

    def test_malformed_identifiers_are_not_extracted(self):
        for text in ('use __init__ here', 'trailing_ underscore', 'a__b', '_leading'):
            with self.subTest(text=text):
                self.assertEqual(split_identifiers(text), [Text(text)])

    def test_whole_text_identifier(self):
        self.assertEqual(split_identifiers('log_level'), [Verbatim('log_level')])


class TestProtectVariables(unittest.TestCase):

    def test_only_prose_is_split(self):
        root = Root(children=[
            Paragraph(children=[Text('Set log_level to '), InlineCode('debug_mode'), Text('.')]),
            CodeBlock(value='log_level = "debug"'),
        ])

        self.assertEqual(protect_variables(root), 1)
        self.assertEqual(root.children[0].children, [
            Text('Set '), Verbatim('log_level'), Text(' to '), InlineCode('debug_mode'), Text('.'),
        ])
        self.assertEqual(root.children[1].value, 'log_level = "debug"')

    def test_expressions_are_not_split(self):
        root = parse_document('Set {config.log_dir} or log_dir.\n')

        protect_variables(root)

        self.assertEqual(root.children[0].children, [
            Text('Set '), Expression('{config.log_dir}'), Text(' or '), Verbatim('log_dir'), Text('.'),
        ])

    def test_guarded_document_serializes_identically(self):
        source = 'Set `x` and log_level here.\n'
        root = parse_document(source)

        protect_variables(root)

        self.assertEqual(serialize_document(root), source)

    def test_guarded_identifiers_are_not_collected(self):
        root = Root(children=[Paragraph(children=[Text('see sys_log_dir now')])])
        protect_variables(root)

        units = collect_translatable_units(root)

        self.assertEqual([unit.original for unit in units], ['see ', ' now'])


if __name__ == '__main__':
    unittest.main()
