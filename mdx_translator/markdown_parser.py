"""
Markdown/MDX parser.

MDX constructs that plain Markdown does not know about (front matter, ESM
statements, flow expressions, directives and embedded components) are
recognised line by line; everything in between is handed to mistune in AST
mode and converted into the typed tree from ``document_model``.
"""
import html
import re
import textwrap
from typing import Any, Dict, List, Optional, Tuple

import mistune

from mdx_translator.document_model import (
    Attribute, Blockquote, Break, CodeBlock, Component, Delete, Directive, Emphasis,
    Esm, Expression, FrontMatter, Heading, Html, HtmlBlock, Image, InlineCode,
    InlineComponent, Link, ListBlock, ListItem, Node, Paragraph, Root, Strong, Table,
    TableCell, TableRow, Text, ThematicBreak,
)


class DocumentParseError(ValueError):
    """Raised when a document cannot be turned into a tree."""


FRONT_MATTER_PATTERN = re.compile(r'\A---[ \t]*\n(?:(.*?)\n)?---[ \t]*(?:\n|\Z)', re.DOTALL)
FENCE_OPEN_PATTERN = re.compile(r'^ {0,3}(`{3,}|~{3,})')
ESM_PATTERN = re.compile(r'^(?:import|export)\b')
CONTAINER_DIRECTIVE_PATTERN = re.compile(
    r'^(:{3,})([A-Za-z][\w-]*)(?:\[([^\]]*)\])?(?:\{([^}]*)\})?\s*$')
DIRECTIVE_CLOSE_PATTERN = re.compile(r'^(:{3,})\s*$')
LEAF_DIRECTIVE_PATTERN = re.compile(
    r'^::(?!:)([A-Za-z][\w-]*)(?:\[([^\]]*)\])?(?:\{([^}]*)\})?\s*$')
TAG_START_PATTERN = re.compile(r'^<([A-Za-z][\w.-]*)(?=[\s/>]|$)')
ATTRIBUTE_NAME_PATTERN = re.compile(r'[A-Za-z_:][\w:.-]*')
INLINE_OPEN_TAG_PATTERN = re.compile(r'^<([A-Za-z][\w.:-]*)(\s[^>]*?)?\s*(/?)>$', re.DOTALL)
INLINE_CLOSE_TAG_PATTERN = re.compile(r'^</([A-Za-z][\w.:-]*)\s*>$')

# HTML elements that never take a closing tag.
VOID_ELEMENTS = frozenset({
    'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input', 'link', 'meta',
    'param', 'source', 'track', 'wbr',
})

def _find_closing_brace(source: str, start: int) -> int:
    """Index of the ``}`` balancing the ``{`` at ``start``, or -1."""
    depth = 0
    for index in range(start, len(source)):
        if source[index] == '{':
            depth += 1
        elif source[index] == '}':
            depth -= 1
            if depth == 0:
                return index
    return -1


def _parse_inline_expression(inline, m, state):
    end = _find_closing_brace(state.src, m.start())
    if end == -1:
        return None
    state.append_token({'type': 'mdx_expression', 'raw': state.src[m.start():end + 1]})
    return end + 1


def mdx_expressions(md) -> None:
    """mistune plugin: unescaped ``{...}`` spans inside a paragraph become ``mdx_expression`` tokens."""
    md.inline.register('mdx_expression', r'\{', _parse_inline_expression, before='link')


_markdown = mistune.create_markdown(renderer=None, plugins=["table", "strikethrough", mdx_expressions])


def parse_document(text: str) -> Root:
    """
    Parse a Markdown/MDX document into a ``Root`` node.

    Args:
        text: The full document source.

    Returns:
        Root: The document tree.

    Raises:
        DocumentParseError: If an embedded component is never closed.
    """
    text = text.replace('\r\n', '\n')
    children: List[Node] = []

    match = FRONT_MATTER_PATTERN.match(text)
    if match:
        children.append(FrontMatter(value=match.group(1) or ''))
        text = text[match.end():]

    children.extend(_parse_blocks(text.split('\n'), line_offset=0))
    return Root(children=children)


def parse_inline(text: str) -> List[Node]:
    """Parse a single line of inline Markdown (directive labels, one-line components)."""
    if not text.strip():
        return [Text(text)] if text else []
    tokens = _parse_markdown(text)
    if len(tokens) == 1 and tokens[0].get('type') == 'paragraph':
        return _convert_inlines(tokens[0].get('children', []))
    return [Text(text)]


def _parse_markdown(text: str) -> List[Dict[str, Any]]:
    result = _markdown.parse(text)
    # mistune returns a (tokens, state) tuple in AST mode
    tokens = result[0] if isinstance(result, tuple) else result
    return tokens


def _closes_fence(line: str, fence: str) -> bool:
    stripped = line.strip()
    return stripped.startswith(fence) and set(stripped) == {fence[0]}


def _at_block_start(buffer: List[str]) -> bool:
    return not buffer or not buffer[-1].strip()


def _parse_blocks(lines: List[str], line_offset: int) -> List[Node]:
    nodes: List[Node] = []
    buffer: List[str] = []
    fence: Optional[str] = None

    def flush() -> None:
        if any(line.strip() for line in buffer):
            nodes.extend(_convert_blocks(_parse_markdown('\n'.join(buffer))))
        buffer.clear()

    i = 0
    while i < len(lines):
        line = lines[i]

        if fence:
            buffer.append(line)
            if _closes_fence(line, fence):
                fence = None
            i += 1
            continue

        fence_match = FENCE_OPEN_PATTERN.match(line)
        if fence_match:
            fence = fence_match.group(1)
            buffer.append(line)
            i += 1
            continue

        if not _at_block_start(buffer):
            buffer.append(line)
            i += 1
            continue

        if ESM_PATTERN.match(line):
            flush()
            end = i
            while end < len(lines) and lines[end].strip():
                end += 1
            nodes.append(Esm(value='\n'.join(lines[i:end])))
            i = end
            continue

        if line.startswith('{'):
            end = _find_expression_end(lines, i)
            if end is not None:
                flush()
                nodes.append(Expression(value='\n'.join(lines[i:end + 1])))
                i = end + 1
                continue

        if line.startswith('<!--'):
            flush()
            end = i
            while end < len(lines) - 1 and '-->' not in lines[end]:
                end += 1
            nodes.append(HtmlBlock(value='\n'.join(lines[i:end + 1])))
            i = end + 1
            continue

        directive_match = CONTAINER_DIRECTIVE_PATTERN.match(line)
        if directive_match:
            flush()
            directive, i = _parse_container_directive(lines, i, directive_match, line_offset)
            nodes.append(directive)
            continue

        leaf_match = LEAF_DIRECTIVE_PATTERN.match(line)
        if leaf_match:
            flush()
            name, label, attributes = leaf_match.groups()
            nodes.append(Directive(
                name=name,
                kind='leaf',
                label=parse_inline(label) if label else [],
                attributes=attributes or '',
            ))
            i += 1
            continue

        if TAG_START_PATTERN.match(line):
            parsed = _parse_component(lines, i, line_offset)
            if parsed is not None:
                flush()
                component, i = parsed
                nodes.append(component)
                continue

        buffer.append(line)
        i += 1

    flush()
    return nodes


def _find_expression_end(lines: List[str], start: int) -> Optional[int]:
    """
    Last line of a flow expression opening at ``lines[start]``.

    Returns None when text follows the closing brace on its line; such a
    line is a paragraph that merely starts with an inline expression. An
    unbalanced expression runs to the end of the document.
    """
    source = '\n'.join(lines[start:])
    close = _find_closing_brace(source, 0)
    if close == -1:
        return len(lines) - 1
    if source[close + 1:].split('\n', 1)[0].strip():
        return None
    return start + source.count('\n', 0, close)


def _parse_container_directive(
        lines: List[str],
        start: int,
        match: 're.Match[str]',
        line_offset: int
) -> Tuple[Directive, int]:
    colons, name, label, attributes = match.groups()
    depth = 0
    fence: Optional[str] = None
    end = len(lines)
    for index in range(start + 1, len(lines)):
        line = lines[index]
        if fence:
            if _closes_fence(line, fence):
                fence = None
            continue
        fence_match = FENCE_OPEN_PATTERN.match(line)
        if fence_match:
            fence = fence_match.group(1)
            continue
        if CONTAINER_DIRECTIVE_PATTERN.match(line):
            depth += 1
            continue
        close_match = DIRECTIVE_CLOSE_PATTERN.match(line)
        if close_match:
            if depth > 0:
                depth -= 1
            elif len(close_match.group(1)) >= len(colons):
                end = index
                break

    directive = Directive(
        name=name,
        kind='container',
        label=parse_inline(label) if label else [],
        attributes=attributes or '',
        children=_parse_blocks(lines[start + 1:end], line_offset + start + 1),
    )
    # An unclosed container runs to the end of the document.
    return directive, end + 1


def _scan_tag_end(text: str, start: int) -> int:
    """Return the index of the ``>`` closing the tag opened at ``start``, or -1."""
    quote: Optional[str] = None
    depth = 0
    for index in range(start + 1, len(text)):
        char = text[index]
        if quote:
            if char == quote:
                quote = None
        elif char in ('"', "'"):
            quote = char
        elif char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
        elif char == '>' and depth == 0:
            return index
    return -1


def _split_tag(source: str) -> Tuple[str, str, bool]:
    """Split ``<Name attrs />`` into name, attribute source and the self-closing flag."""
    inner = source[1:-1].strip()
    self_closing = inner.endswith('/')
    if self_closing:
        inner = inner[:-1]
    name_match = re.match(r'[A-Za-z][\w.:-]*', inner)
    name = name_match.group(0)
    return name, inner[name_match.end():].strip(), self_closing


def parse_attributes(source: str) -> List[Attribute]:
    """Parse JSX/HTML attribute source into an ordered list of ``Attribute``."""
    attributes: List[Attribute] = []
    index = 0
    length = len(source)
    while index < length:
        if source[index].isspace():
            index += 1
            continue
        if source[index] == '{':
            end = _matching_brace(source, index)
            attributes.append(Attribute(name='', expression=source[index:end + 1]))
            index = end + 1
            continue
        name_match = ATTRIBUTE_NAME_PATTERN.match(source, index)
        if not name_match:
            index += 1
            continue
        name = name_match.group(0)
        index = name_match.end()
        while index < length and source[index].isspace():
            index += 1
        if index >= length or source[index] != '=':
            attributes.append(Attribute(name=name))
            continue
        index += 1
        while index < length and source[index].isspace():
            index += 1
        if index >= length:
            attributes.append(Attribute(name=name, value=''))
            break
        char = source[index]
        if char in ('"', "'"):
            end = source.find(char, index + 1)
            if end == -1:
                end = length
            attributes.append(Attribute(
                name=name, value=html.unescape(source[index + 1:end]), quote=char))
            index = end + 1
        elif char == '{':
            end = _matching_brace(source, index)
            attributes.append(Attribute(name=name, expression=source[index:end + 1]))
            index = end + 1
        else:
            end = index
            while end < length and not source[end].isspace():
                end += 1
            attributes.append(Attribute(name=name, value=source[index:end]))
            index = end
    return attributes


def _matching_brace(source: str, start: int) -> int:
    end = _find_closing_brace(source, start)
    return end if end != -1 else len(source) - 1


def _parse_component(
        lines: List[str],
        start: int,
        line_offset: int
) -> Optional[Tuple[Component, int]]:
    rest = '\n'.join(lines[start:])
    tag_end = _scan_tag_end(rest, 0)
    if tag_end == -1:
        return None

    name, attribute_source, self_closing = _split_tag(rest[:tag_end + 1])
    attributes = parse_attributes(attribute_source)
    tag_last_line = start + rest.count('\n', 0, tag_end)
    line_end = rest.find('\n', tag_end)
    tail = rest[tag_end + 1:] if line_end == -1 else rest[tag_end + 1:line_end]

    if self_closing or name.lower() in VOID_ELEMENTS:
        if tail.strip():
            # Tag followed by prose on the same line: it is inline content.
            return None
        return Component(name=name, attributes=attributes, self_closing=True), tag_last_line + 1

    closing_tag = re.compile(r'^(.*?)</' + re.escape(name) + r'\s*>\s*$')
    inline_close = closing_tag.match(tail)
    if inline_close:
        component = Component(
            name=name,
            attributes=attributes,
            children=parse_inline(inline_close.group(1)),
            inline=True,
        )
        return component, tag_last_line + 1

    opening_tag = re.compile(r'^\s*<' + re.escape(name) + r'(?=[\s>/]|$)')
    depth = 0
    fence: Optional[str] = None
    for index in range(tag_last_line + 1, len(lines)):
        line = lines[index]
        if fence:
            if _closes_fence(line, fence):
                fence = None
            continue
        fence_match = FENCE_OPEN_PATTERN.match(line.strip())
        if fence_match:
            fence = fence_match.group(1)
            continue
        if opening_tag.match(line) and not line.rstrip().endswith('/>'):
            if not closing_tag.match(line):
                depth += 1
            continue
        close_match = closing_tag.match(line)
        if close_match:
            if depth > 0:
                depth -= 1
                continue
            body = lines[tag_last_line + 1:index]
            if tail.strip():
                body.insert(0, tail)
            if close_match.group(1).strip():
                body.append(close_match.group(1))
            children = _parse_blocks(
                textwrap.dedent('\n'.join(body)).split('\n'),
                line_offset + tag_last_line + 1,
            )
            component = Component(name=name, attributes=attributes, children=children)
            return component, index + 1

    raise DocumentParseError(
        f"Unclosed <{name}> component starting on line {line_offset + start + 1}")


# --- mistune token conversion ---

def _convert_blocks(tokens: List[Dict[str, Any]]) -> List[Node]:
    nodes: List[Node] = []
    for token in tokens:
        node = _convert_block(token)
        if node is not None:
            nodes.append(node)
    return nodes


def _convert_block(token: Dict[str, Any]) -> Optional[Node]:
    token_type = token.get('type')
    attrs = token.get('attrs', {})

    if token_type == 'blank_line':
        return None
    if token_type in ('paragraph', 'block_text'):
        return Paragraph(children=_convert_inlines(token.get('children', [])))
    if token_type == 'heading':
        return Heading(level=attrs.get('level', 1),
                       children=_convert_inlines(token.get('children', [])))
    if token_type == 'thematic_break':
        return ThematicBreak()
    if token_type == 'block_quote':
        return Blockquote(children=_convert_blocks(token.get('children', [])))
    if token_type == 'list':
        return ListBlock(
            ordered=bool(attrs.get('ordered', False)),
            start=attrs.get('start', 1),
            tight=token.get('tight', True),
            children=[ListItem(children=_convert_blocks(item.get('children', [])))
                      for item in token.get('children', [])],
        )
    if token_type == 'block_code':
        code = token.get('raw', '')
        if code.endswith('\n'):
            code = code[:-1]
        return CodeBlock(value=code, info=(attrs.get('info') or '').strip())
    if token_type == 'block_html':
        return HtmlBlock(value=token.get('raw', '').rstrip('\n'))
    if token_type == 'table':
        return _convert_table(token)
    if 'raw' in token:
        return HtmlBlock(value=token['raw'].rstrip('\n'))
    raise DocumentParseError(f"Unsupported Markdown block: {token_type}")


def _convert_table(token: Dict[str, Any]) -> Table:
    table = Table()
    for section in token.get('children', []):
        if section.get('type') == 'table_head':
            cells = section.get('children', [])
            table.align = [cell.get('attrs', {}).get('align') for cell in cells]
            table.children.append(TableRow(children=[
                TableCell(children=_convert_inlines(cell.get('children', []))) for cell in cells
            ]))
        elif section.get('type') == 'table_body':
            for row in section.get('children', []):
                table.children.append(TableRow(children=[
                    TableCell(children=_convert_inlines(cell.get('children', [])))
                    for cell in row.get('children', [])
                ]))
    return table


def _plain_text(tokens: List[Dict[str, Any]]) -> str:
    parts = []
    for token in tokens:
        if 'children' in token:
            parts.append(_plain_text(token['children']))
        else:
            parts.append(token.get('raw', ''))
    return ''.join(parts)


def _convert_inline(token: Dict[str, Any]) -> Node:
    token_type = token.get('type')
    attrs = token.get('attrs', {})

    if token_type == 'text':
        return Text(token.get('raw', ''))
    if token_type == 'softbreak':
        return Text('\n')
    if token_type == 'linebreak':
        return Break()
    if token_type == 'codespan':
        return InlineCode(token.get('raw', ''))
    if token_type == 'mdx_expression':
        return Expression(token.get('raw', ''))
    if token_type == 'emphasis':
        return Emphasis(children=_convert_inlines(token.get('children', [])))
    if token_type == 'strong':
        return Strong(children=_convert_inlines(token.get('children', [])))
    if token_type == 'strikethrough':
        return Delete(children=_convert_inlines(token.get('children', [])))
    if token_type == 'link':
        return Link(url=attrs.get('url', ''), title=attrs.get('title'),
                    children=_convert_inlines(token.get('children', [])))
    if token_type == 'image':
        return Image(url=attrs.get('url', ''), title=attrs.get('title'),
                     alt=_plain_text(token.get('children', [])))
    # inline_html and anything else mistune emits pass through untouched
    return Html(token.get('raw', ''))


def _convert_inlines(tokens: List[Dict[str, Any]]) -> List[Node]:
    merged: List[Node] = []
    for token in tokens:
        node = _convert_inline(token)
        if isinstance(node, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(merged[-1].value + node.value)
        else:
            merged.append(node)
    return _pair_inline_tags(merged)


def _pair_inline_tags(nodes: List[Node]) -> List[Node]:
    """Fold ``<Tag>`` ... ``</Tag>`` raw inline markup into ``InlineComponent`` nodes."""
    result: List[Node] = []
    index = 0
    while index < len(nodes):
        node = nodes[index]
        open_match = INLINE_OPEN_TAG_PATTERN.match(node.value) if isinstance(node, Html) else None
        if not open_match:
            result.append(node)
            index += 1
            continue

        name, attribute_source, slash = open_match.groups()
        attributes = parse_attributes(attribute_source or '')
        if slash or name.lower() in VOID_ELEMENTS:
            result.append(InlineComponent(name=name, attributes=attributes, self_closing=True))
            index += 1
            continue

        close_index = _find_inline_close(nodes, index, name)
        if close_index == -1:
            result.append(node)
            index += 1
            continue

        result.append(InlineComponent(
            name=name,
            attributes=attributes,
            children=_pair_inline_tags(nodes[index + 1:close_index]),
        ))
        index = close_index + 1
    return result


def _find_inline_close(nodes: List[Node], start: int, name: str) -> int:
    depth = 0
    for index in range(start + 1, len(nodes)):
        node = nodes[index]
        if not isinstance(node, Html):
            continue
        open_match = INLINE_OPEN_TAG_PATTERN.match(node.value)
        if open_match and open_match.group(1) == name and not open_match.group(3):
            depth += 1
            continue
        close_match = INLINE_CLOSE_TAG_PATTERN.match(node.value)
        if close_match and close_match.group(1) == name:
            if depth == 0:
                return index
            depth -= 1
    return -1
