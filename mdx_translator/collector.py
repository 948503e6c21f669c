"""Collects the translatable units of a document tree."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from mdx_translator.document_model import (
    CODE_LIKE_TYPES, SKIP, Attribute, Component, FrontMatter, InlineComponent, Node,
    Root, Text, visit,
)

logger = logging.getLogger(__name__)

DEFAULT_FRONTMATTER_KEYS = ('title', 'description', 'sidebar_label', 'summary')
DEFAULT_COMPONENT_ATTRIBUTES = ('title', 'label', 'alt', 'placeholder', 'summary')


class UnitKind(Enum):
    TEXT = "text"
    ATTRIBUTE = "attribute"
    FRONT_MATTER = "frontmatter"


@dataclass
class TranslatableUnit:
    """
    One string in the tree that can be translated, plus what is needed to
    overwrite it in place.

    ``target`` is the ``Text`` node, the ``Attribute`` or the ``FrontMatter``
    node. Front-matter units also carry the ``key`` and the parsed mapping
    (``data``) shared by every unit of the same block.
    """
    kind: UnitKind
    original: str
    target: Union[Text, Attribute, FrontMatter]
    key: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def apply(self, translated: str) -> None:
        """Write ``translated`` back to the unit's location."""
        if self.kind in (UnitKind.TEXT, UnitKind.ATTRIBUTE):
            self.target.value = translated
        elif self.kind is UnitKind.FRONT_MATTER:
            self.data[self.key] = translated
        else:
            raise ValueError(f"Unknown unit kind: {self.kind}")


def load_front_matter(node: FrontMatter) -> Optional[Dict[str, Any]]:
    """
    Parse a front-matter block.

    Returns:
        The mapping, or None when the block is not valid YAML or not a mapping.
    """
    try:
        data = yaml.safe_load(node.value) if node.value.strip() else {}
    except yaml.YAMLError as exc:
        logger.warning(f"Front matter could not be parsed and will not be translated: {exc}")
        return None
    if not isinstance(data, dict):
        logger.warning("Front matter is not a key-value mapping and will not be translated.")
        return None
    return data


def collect_translatable_units(
        root: Root,
        frontmatter_keys: Iterable[str] = DEFAULT_FRONTMATTER_KEYS,
        component_attributes: Iterable[str] = DEFAULT_COMPONENT_ATTRIBUTES
) -> List[TranslatableUnit]:
    """
    Walk the tree once (depth-first, pre-order) and gather every translatable unit.

    Code spans, code blocks, raw markup, ESM, expressions and verbatim tokens
    are skipped together with their subtrees.

    Args:
        root: The parsed document.
        frontmatter_keys: Front-matter keys whose string values are translated.
        component_attributes: Component attribute names whose string values are translated.

    Returns:
        List[TranslatableUnit]: The units in document order.
    """
    frontmatter_keys = set(frontmatter_keys)
    component_attributes = set(component_attributes)
    units: List[TranslatableUnit] = []

    def _collect(node: Node, parent: Optional[Node]) -> Optional[str]:
        if isinstance(node, CODE_LIKE_TYPES):
            return SKIP

        if isinstance(node, Text):
            if node.value.strip():
                units.append(TranslatableUnit(UnitKind.TEXT, node.value, node))
            return None

        if isinstance(node, (Component, InlineComponent)):
            for attribute in node.attributes:
                if (attribute.name in component_attributes
                        and attribute.expression is None
                        and isinstance(attribute.value, str)
                        and attribute.value.strip()):
                    units.append(TranslatableUnit(UnitKind.ATTRIBUTE, attribute.value, attribute))
            return None

        if isinstance(node, FrontMatter):
            data = load_front_matter(node)
            if data is None:
                return None
            for key, value in data.items():
                if key in frontmatter_keys and isinstance(value, str) and value.strip():
                    units.append(TranslatableUnit(
                        UnitKind.FRONT_MATTER, value, node, key=key, data=data))
            return None

        return None

    visit(root, _collect)
    return units
