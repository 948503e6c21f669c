"""
Markdown/MDX serializer.

Output style is fixed: ``*`` emphasis, ``**`` strong, ``-`` bullets, fenced
code blocks, ATX headings, ``***`` thematic breaks and one blank line between
blocks.
"""
import re
import string
from typing import List, Optional

from mdx_translator.document_model import (
    Attribute, Blockquote, Break, CodeBlock, Component, Delete, Directive, Emphasis,
    Esm, Expression, FrontMatter, Heading, Html, HtmlBlock, Image, InlineCode,
    InlineComponent, Link, ListBlock, ListItem, Node, Paragraph, Root, Strong, Table,
    TableRow, Text, ThematicBreak, Verbatim,
)

# ASCII punctuation left alone in running text. Every other ASCII punctuation
# character is escaped, except the contextual ones below and the line-start
# markers, which are only escaped where they would otherwise turn into syntax.
# ``{`` and ``}`` are not exempt: unescaped, MDX reads them as an expression.
ESCAPE_EXEMPT = frozenset('!"#$%&\'()+,-./:;=>?@^')
CONTEXTUAL = frozenset('_~|<')
# ``<`` followed by one of these would open a tag, comment or autolink.
TAG_START = re.compile(r'[A-Za-z/!?]')

LINE_START_PATTERNS = (
    re.compile(r'^(#{1,6})(?=\s|$)'),
    re.compile(r'^(>)'),
    re.compile(r'^([-+])(?=\s|$)'),
    re.compile(r'^(\d{1,9})([.)])(?=\s|$)'),
    re.compile(r'^(=+|-+)\s*$'),
    re.compile(r'^(:{2,})'),
)

CHILD_INDENT = '  '


def serialize_document(root: Root) -> str:
    """Serialize a document tree back to Markdown/MDX text."""
    body = _serialize_blocks(root.children)
    return body + '\n' if body else ''


def _serialize_blocks(nodes: List[Node], separator: str = '\n\n') -> str:
    return separator.join(_serialize_block(node) for node in nodes)


def _indent(text: str, prefix: str) -> str:
    return '\n'.join(prefix + line if line else line for line in text.split('\n'))


def _serialize_block(node: Node) -> str:
    if isinstance(node, FrontMatter):
        if not node.value:
            return '---\n---'
        return f'---\n{node.value}\n---'
    if isinstance(node, Paragraph):
        return _serialize_inlines(node.children)
    if isinstance(node, Heading):
        return '#' * node.level + ' ' + _serialize_inlines(node.children, line_start=False)
    if isinstance(node, ThematicBreak):
        return '***'
    if isinstance(node, Blockquote):
        inner = _serialize_blocks(node.children)
        return '\n'.join('> ' + line if line else '>' for line in inner.split('\n'))
    if isinstance(node, ListBlock):
        return _serialize_list(node)
    if isinstance(node, CodeBlock):
        fence = _code_fence(node.value)
        if not node.value:
            return f'{fence}{node.info}\n{fence}'
        return f'{fence}{node.info}\n{node.value}\n{fence}'
    if isinstance(node, (HtmlBlock, Esm, Expression)):
        return node.value
    if isinstance(node, Component):
        return _serialize_component(node)
    if isinstance(node, Directive):
        return _serialize_directive(node)
    if isinstance(node, Table):
        return _serialize_table(node)
    raise TypeError(f"Cannot serialize block node: {node!r}")


def _serialize_list(node: ListBlock) -> str:
    items = []
    separator = '\n' if node.tight else '\n\n'
    for offset, item in enumerate(node.children):
        marker = f'{node.start + offset}.' if node.ordered else '-'
        content = _serialize_list_item(item, separator)
        if not content:
            items.append(marker)
            continue
        padding = ' ' * (len(marker) + 1)
        first, _, rest = content.partition('\n')
        text = f'{marker} {first}'
        if rest:
            text += '\n' + _indent(rest, padding)
        items.append(text)
    return separator.join(items)


def _serialize_list_item(item: ListItem, separator: str) -> str:
    return _serialize_blocks(item.children, separator)


def _code_fence(value: str) -> str:
    longest = max((len(run) for run in re.findall(r'`+', value)), default=0)
    return '`' * max(3, longest + 1)


def serialize_attributes(attributes: List[Attribute]) -> str:
    """Render attributes back to JSX source, preserving their order."""
    parts = []
    for attribute in attributes:
        if attribute.expression is not None:
            if attribute.name:
                parts.append(f'{attribute.name}={attribute.expression}')
            else:
                parts.append(attribute.expression)
        elif attribute.value is None:
            parts.append(attribute.name)
        else:
            quote = attribute.quote
            value = attribute.value
            if quote in value:
                other = "'" if quote == '"' else '"'
                if other in value:
                    value = value.replace(quote, '&quot;' if quote == '"' else '&#39;')
                else:
                    quote = other
            parts.append(f'{attribute.name}={quote}{value}{quote}')
    return ''.join(' ' + part for part in parts)


def _serialize_component(node: Component) -> str:
    attributes = serialize_attributes(node.attributes)
    if node.self_closing:
        return f'<{node.name}{attributes} />'
    if node.inline:
        return f'<{node.name}{attributes}>{_serialize_inlines(node.children)}</{node.name}>'
    if not node.children:
        return f'<{node.name}{attributes}>\n</{node.name}>'
    inner = _indent(_serialize_blocks(node.children), CHILD_INDENT)
    return f'<{node.name}{attributes}>\n{inner}\n</{node.name}>'


def _directive_depth(node: Directive) -> int:
    nested = [child for child in node.children
              if isinstance(child, Directive) and child.kind == 'container']
    return 1 + max((_directive_depth(child) for child in nested), default=0)


def _serialize_directive(node: Directive) -> str:
    label = f'[{_serialize_inlines(node.label, line_start=False)}]' if node.label else ''
    attributes = f'{{{node.attributes}}}' if node.attributes else ''
    if node.kind == 'leaf':
        return f'::{node.name}{label}{attributes}'
    # Outer containers get longer fences so nested ones close unambiguously.
    colons = ':' * (2 + _directive_depth(node))
    opening = f'{colons}{node.name}{label}{attributes}'
    if not node.children:
        return f'{opening}\n{colons}'
    return f'{opening}\n{_serialize_blocks(node.children)}\n{colons}'


def _serialize_table(node: Table) -> str:
    def render_row(row: TableRow) -> str:
        cells = [_serialize_inlines(cell.children, line_start=False, in_table=True)
                 for cell in row.children]
        return '| ' + ' | '.join(cells) + ' |'

    delimiters = {None: '---', 'left': ':---', 'right': '---:', 'center': ':---:'}
    lines = []
    for index, row in enumerate(node.children):
        lines.append(render_row(row))
        if index == 0:
            align = node.align or [None] * len(row.children)
            lines.append('| ' + ' | '.join(delimiters.get(a, '---') for a in align) + ' |')
    return '\n'.join(lines)


def _serialize_inlines(nodes: List[Node], line_start: bool = True, in_table: bool = False) -> str:
    output = ''
    for node in nodes:
        at_line_start = line_start if not output else output.endswith('\n')
        output += _serialize_inline(node, at_line_start, in_table)
    return output


def _serialize_inline(node: Node, at_line_start: bool, in_table: bool) -> str:
    if isinstance(node, Text):
        return escape_text(node.value, at_line_start, in_table)
    if isinstance(node, InlineCode):
        return _serialize_code_span(node.value)
    if isinstance(node, (Html, Verbatim, Expression)):
        return node.value
    if isinstance(node, Break):
        return '\\\n'
    if isinstance(node, Emphasis):
        return '*' + _serialize_inlines(node.children, False, in_table) + '*'
    if isinstance(node, Strong):
        return '**' + _serialize_inlines(node.children, False, in_table) + '**'
    if isinstance(node, Delete):
        return '~~' + _serialize_inlines(node.children, False, in_table) + '~~'
    if isinstance(node, Link):
        text = _serialize_inlines(node.children, False, in_table)
        return f'[{text}]({_destination(node.url, node.title)})'
    if isinstance(node, Image):
        alt = escape_text(node.alt, False, in_table)
        return f'![{alt}]({_destination(node.url, node.title)})'
    if isinstance(node, InlineComponent):
        attributes = serialize_attributes(node.attributes)
        if node.self_closing:
            return f'<{node.name}{attributes} />'
        inner = _serialize_inlines(node.children, False, in_table)
        return f'<{node.name}{attributes}>{inner}</{node.name}>'
    raise TypeError(f"Cannot serialize inline node: {node!r}")


def _serialize_code_span(value: str) -> str:
    longest = max((len(run) for run in re.findall(r'`+', value)), default=0)
    fence = '`' * (longest + 1)
    padded = value.startswith('`') or value.endswith('`') or (
        value.startswith(' ') and value.endswith(' ') and value.strip())
    if padded:
        return f'{fence} {value} {fence}'
    return f'{fence}{value}{fence}'


def _destination(url: str, title: Optional[str]) -> str:
    if not url or re.search(r'[\s<>]', url):
        url = f'<{url}>'
    if title:
        return url + ' "' + title.replace('"', '\\"') + '"'
    return url


def escape_text(value: str, at_line_start: bool = False, in_table: bool = False) -> str:
    """Escape characters of running text that would otherwise parse as Markdown syntax."""
    escaped = []
    length = len(value)
    for index, char in enumerate(value):
        previous = value[index - 1] if index else ''
        following = value[index + 1] if index + 1 < length else ''
        if char not in CONTEXTUAL and char in string.punctuation and char not in ESCAPE_EXEMPT:
            escaped.append('\\' + char)
        elif char == '_' and not (previous.isalnum() and following.isalnum()):
            escaped.append('\\_')
        elif char == '~' and '~' in (previous, following):
            escaped.append('\\~')
        elif char == '|' and in_table:
            escaped.append('\\|')
        elif char == '<' and TAG_START.match(following):
            escaped.append('\\<')
        else:
            escaped.append(char)

    lines = ''.join(escaped).split('\n')
    for index, line in enumerate(lines):
        if index or at_line_start:
            lines[index] = _escape_line_start(line)
    return '\n'.join(lines)


def _escape_line_start(line: str) -> str:
    for pattern in LINE_START_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue
        if match.lastindex == 2:
            # Ordered list marker: escape the delimiter after the number.
            return match.group(1) + '\\' + line[match.end(1):]
        return '\\' + line
    return line
