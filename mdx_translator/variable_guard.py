"""Keeps snake_case identifiers in prose out of translation and escaping."""
import re
from typing import List

from mdx_translator.document_model import Node, Root, Text, Verbatim, prose_child_lists

# Alphanumeric runs joined by underscores, never starting or ending inside a
# longer [A-Za-z0-9_] run.
IDENTIFIER_PATTERN = re.compile(r'(?<![A-Za-z0-9_])[A-Za-z0-9]+(?:_[A-Za-z0-9]+)+(?![A-Za-z0-9_])')


def split_identifiers(text: str) -> List[Node]:
    """
    Split ``text`` into ``Text`` and ``Verbatim`` fragments around identifiers.

    >>> split_identifiers("see sys_log_dir and other text")
    [Text(value='see '), Verbatim(value='sys_log_dir'), Text(value=' and other text')]
    """
    if '_' not in text:
        return [Text(text)]

    fragments: List[Node] = []
    position = 0
    for match in IDENTIFIER_PATTERN.finditer(text):
        if match.start() > position:
            fragments.append(Text(text[position:match.start()]))
        fragments.append(Verbatim(match.group()))
        position = match.end()
    if position < len(text):
        fragments.append(Text(text[position:]))
    return fragments or [Text(text)]


def protect_variables(root: Root) -> int:
    """
    Replace identifiers inside prose text nodes with ``Verbatim`` nodes.

    Returns:
        int: The number of identifiers extracted.
    """
    extracted = 0
    for children in prose_child_lists(root):
        rebuilt: List[Node] = []
        for child in children:
            if isinstance(child, Text):
                fragments = split_identifiers(child.value)
                extracted += sum(isinstance(fragment, Verbatim) for fragment in fragments)
                rebuilt.extend(fragments)
            else:
                rebuilt.append(child)
        children[:] = rebuilt
    return extracted
