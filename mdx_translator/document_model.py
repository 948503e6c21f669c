"""Typed document tree for Markdown/MDX documents."""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

# Returned by a visitor to keep the walker out of the current node's subtree.
SKIP = "skip"


@dataclass
class Attribute:
    """One attribute of an embedded component, in source order."""
    name: str
    value: Optional[str] = None
    # Raw ``{...}`` source for expression-valued attributes.
    expression: Optional[str] = None
    quote: str = '"'


# --- Inline nodes ---

@dataclass
class Text:
    value: str


@dataclass
class InlineCode:
    value: str


@dataclass
class Verbatim:
    """Identifier-like token emitted as-is, never escaped and never translated."""
    value: str


@dataclass
class Html:
    """Raw inline markup."""
    value: str


@dataclass
class Break:
    pass


@dataclass
class Emphasis:
    children: List["Node"] = field(default_factory=list)


@dataclass
class Strong:
    children: List["Node"] = field(default_factory=list)


@dataclass
class Delete:
    children: List["Node"] = field(default_factory=list)


@dataclass
class Link:
    url: str
    title: Optional[str] = None
    children: List["Node"] = field(default_factory=list)


@dataclass
class Image:
    url: str
    alt: str = ""
    title: Optional[str] = None


@dataclass
class InlineComponent:
    name: str
    attributes: List[Attribute] = field(default_factory=list)
    children: List["Node"] = field(default_factory=list)
    self_closing: bool = False


# --- Block nodes ---

@dataclass
class FrontMatter:
    """YAML metadata block; ``value`` is the text between the ``---`` fences."""
    value: str


@dataclass
class Paragraph:
    children: List["Node"] = field(default_factory=list)


@dataclass
class Heading:
    level: int
    children: List["Node"] = field(default_factory=list)


@dataclass
class ThematicBreak:
    pass


@dataclass
class Blockquote:
    children: List["Node"] = field(default_factory=list)


@dataclass
class ListItem:
    children: List["Node"] = field(default_factory=list)


@dataclass
class ListBlock:
    ordered: bool = False
    start: int = 1
    tight: bool = True
    children: List[ListItem] = field(default_factory=list)


@dataclass
class CodeBlock:
    value: str
    info: str = ""


@dataclass
class HtmlBlock:
    value: str


@dataclass
class Esm:
    """``import`` / ``export`` statements."""
    value: str


@dataclass
class Expression:
    """A ``{...}`` expression, either on its own lines or inside a paragraph."""
    value: str


@dataclass
class Component:
    name: str
    attributes: List[Attribute] = field(default_factory=list)
    children: List["Node"] = field(default_factory=list)
    self_closing: bool = False
    # Opening tag, content and closing tag share one line.
    inline: bool = False


@dataclass
class Directive:
    """``:::name[label]{attrs}`` container or ``::name[label]{attrs}`` leaf."""
    name: str
    kind: str = "container"
    label: List["Node"] = field(default_factory=list)
    attributes: str = ""
    children: List["Node"] = field(default_factory=list)


@dataclass
class TableCell:
    children: List["Node"] = field(default_factory=list)


@dataclass
class TableRow:
    children: List[TableCell] = field(default_factory=list)


@dataclass
class Table:
    align: List[Optional[str]] = field(default_factory=list)
    # The first row is the header row.
    children: List[TableRow] = field(default_factory=list)


@dataclass
class Root:
    children: List["Node"] = field(default_factory=list)


Node = Union[
    Text, InlineCode, Verbatim, Html, Break, Emphasis, Strong, Delete, Link, Image,
    InlineComponent, FrontMatter, Paragraph, Heading, ThematicBreak, Blockquote,
    ListItem, ListBlock, CodeBlock, HtmlBlock, Esm, Expression, Component, Directive,
    TableCell, TableRow, Table, Root,
]

LEAF_TYPES = (
    Text, InlineCode, Verbatim, Html, Break, Image, FrontMatter, ThematicBreak,
    CodeBlock, HtmlBlock, Esm, Expression,
)

PARENT_TYPES = (
    Root, Paragraph, Heading, Blockquote, ListBlock, ListItem, Component, InlineComponent,
    Emphasis, Strong, Delete, Link, Table, TableRow, TableCell,
)

# Nodes whose content is never prose: nothing below them is translated or rewritten.
CODE_LIKE_TYPES = (CodeBlock, InlineCode, HtmlBlock, Html, Esm, Expression, Verbatim)


def child_lists(node: Node) -> List[List[Node]]:
    """Return the mutable child lists of ``node`` (empty for leaves)."""
    if isinstance(node, Directive):
        return [node.label, node.children]
    if isinstance(node, PARENT_TYPES):
        return [node.children]
    if isinstance(node, LEAF_TYPES):
        return []
    raise TypeError(f"Unknown document node: {node!r}")


Visitor = Callable[[Node, Optional[Node]], Optional[str]]


def visit(root: Node, visitor: Visitor) -> None:
    """
    Walk the tree depth-first, pre-order.

    ``visitor(node, parent)`` may return ``SKIP`` to leave the node's
    subtree unvisited.
    """
    def _walk(node: Node, parent: Optional[Node]) -> None:
        if visitor(node, parent) == SKIP:
            return
        for children in child_lists(node):
            for child in list(children):
                _walk(child, node)

    _walk(root, None)


def prose_child_lists(root: Node) -> List[List[Node]]:
    """Collect every child list that may hold prose text, skipping code-like subtrees."""
    found: List[List[Node]] = []

    def _collect(node: Node, parent: Optional[Node]) -> Optional[str]:
        if isinstance(node, CODE_LIKE_TYPES):
            return SKIP
        found.extend(child_lists(node))
        return None

    visit(root, _collect)
    return found
