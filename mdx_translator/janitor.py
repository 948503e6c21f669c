"""
Post-processing janitor.

Repairs formatting artifacts that translation leaves in prose text nodes.
Each rule is a pure ``(text, context) -> text`` function; ``JANITOR_RULES``
fixes the order they run in. Running the janitor twice gives the same result
as running it once.
"""
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from mdx_translator.app_config import LanguageProfile
from mdx_translator.document_model import (
    Html, InlineCode, InlineComponent, Node, Root, Text, Verbatim, prose_child_lists,
)

CJK_CHARS = '\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff'
CJK = f'[{CJK_CHARS}]'
QUOTE_CHARS = '"\'“”‘’「」『』'

# Siblings that are emitted raw; prose glued to them needs a separating space.
RAW_SIBLING_TYPES = (Html, InlineCode, Verbatim, InlineComponent)

ESCAPED_CODE_CHARS = re.compile(r'\\+(?=[`_])')
LEADING_QUOTES = re.compile(f'^[{QUOTE_CHARS}]+')
TRAILING_QUOTES = re.compile(f'[{QUOTE_CHARS}]+$')
PARENTHESIZED = re.compile(r'([(（])([^()（）]*)([)）])')
PARENTHESIS_CONTENT = re.compile(f'{CJK}|[0-9]')
STARTS_WORDLIKE = re.compile(f'^(?:[A-Za-z0-9]|{CJK})')
CJK_THEN_LATIN = re.compile(f'({CJK})([A-Za-z0-9])')
LATIN_THEN_CJK = re.compile(f'([A-Za-z0-9])({CJK})')
CJK_SENTENCE_PUNCTUATION = re.compile(f'(?<={CJK})([.?!])(?![A-Za-z0-9.])')
SPACE_AFTER_FULL_STOP = re.compile(f'([。？！]) +(?={CJK})')
WIDE_PUNCTUATION_BEFORE_WORD = re.compile(r'([，。：；！？])(?=\w)')
MULTIPLE_SPACES = re.compile(r' {2,}')

TO_CJK_PUNCTUATION = {'.': '。', '?': '？', '!': '！'}
TO_ASCII_PUNCTUATION = str.maketrans({
    '，': ',', '。': '.', '：': ':', '；': ';', '！': '!', '？': '?',
    '（': '(', '）': ')', '「': '"', '」': '"', '『': '"', '』': '"',
    '“': '"', '”': '"', '‘': "'", '’': "'",
})


@dataclass
class TextContext:
    """What a rule may look at besides the text itself."""
    previous_sibling: Optional[Node]
    next_sibling: Optional[Node]
    profile: LanguageProfile


JanitorRule = Callable[[str, TextContext], str]


def unescape_markdown(text: str, context: TextContext) -> str:
    """Drop backslashes in front of backticks and underscores."""
    return ESCAPED_CODE_CHARS.sub('', text)


def strip_quotes_around_code(text: str, context: TextContext) -> str:
    """Remove quote characters that touch an inline code sibling."""
    if isinstance(context.previous_sibling, InlineCode):
        text = LEADING_QUOTES.sub('', text)
    if isinstance(context.next_sibling, InlineCode):
        text = TRAILING_QUOTES.sub('', text)
    return text


def normalize_parentheses(text: str, context: TextContext) -> str:
    """Make both parentheses of a pair use the same width."""

    def _cjk_pair(match: re.Match) -> str:
        opening, content, closing = match.groups()
        wide = opening == '（' or closing == '）' or PARENTHESIS_CONTENT.search(content)
        return f'（{content}）' if wide else match.group(0)

    def _latin_pair(match: re.Match) -> str:
        opening, content, closing = match.groups()
        if (opening == '（') != (closing == '）'):
            return f'({content})'
        return match.group(0)

    return PARENTHESIZED.sub(_cjk_pair if context.profile.is_cjk else _latin_pair, text)


def space_after_raw_sibling(text: str, context: TextContext) -> str:
    """Keep prose from gluing onto a preceding code span or raw markup."""
    if isinstance(context.previous_sibling, RAW_SIBLING_TYPES) and STARTS_WORDLIKE.match(text):
        return ' ' + text
    return text


def space_between_scripts(text: str, context: TextContext) -> str:
    """Put one space between CJK and Latin letters or digits, and next to code."""
    if not context.profile.is_cjk:
        return text
    text = CJK_THEN_LATIN.sub(r'\1 \2', text)
    text = LATIN_THEN_CJK.sub(r'\1 \2', text)
    if isinstance(context.previous_sibling, RAW_SIBLING_TYPES) and re.match(CJK, text):
        text = ' ' + text
    if isinstance(context.next_sibling, RAW_SIBLING_TYPES) and re.search(f'{CJK}$', text):
        text = text + ' '
    return text


def normalize_punctuation(text: str, context: TextContext) -> str:
    """Use the target script's sentence punctuation."""
    if context.profile.is_cjk:
        text = CJK_SENTENCE_PUNCTUATION.sub(lambda m: TO_CJK_PUNCTUATION[m.group(1)], text)
        return SPACE_AFTER_FULL_STOP.sub(r'\1', text)
    text = WIDE_PUNCTUATION_BEFORE_WORD.sub(
        lambda m: m.group(1).translate(TO_ASCII_PUNCTUATION) + ' ', text)
    return text.translate(TO_ASCII_PUNCTUATION)


def collapse_spaces(text: str, context: TextContext) -> str:
    return MULTIPLE_SPACES.sub(' ', text)


JANITOR_RULES: List[JanitorRule] = [
    unescape_markdown,
    strip_quotes_around_code,
    normalize_parentheses,
    space_after_raw_sibling,
    space_between_scripts,
    normalize_punctuation,
    collapse_spaces,
]


def clean_text(text: str, context: TextContext) -> str:
    """Apply every janitor rule to ``text`` in order."""
    for rule in JANITOR_RULES:
        text = rule(text, context)
    return text


def run_janitor(root: Root, profile: LanguageProfile) -> int:
    """
    Clean every prose text node of ``root`` in place.

    Returns:
        int: The number of text nodes that changed.
    """
    changed = 0
    for children in prose_child_lists(root):
        for index, child in enumerate(children):
            if not isinstance(child, Text):
                continue
            context = TextContext(
                previous_sibling=children[index - 1] if index > 0 else None,
                next_sibling=children[index + 1] if index + 1 < len(children) else None,
                profile=profile,
            )
            cleaned = clean_text(child.value, context)
            if cleaned != child.value:
                child.value = cleaned
                changed += 1
    return changed
