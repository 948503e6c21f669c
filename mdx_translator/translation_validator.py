from typing import List
import re
from collections import Counter

# Placeholders like {0}, {name} or {props.count}.
PLACEHOLDER_REGEX = re.compile(r'\{([^{}]+)\}')

# 'Ã' followed by a byte in 0x80-0xFF is what UTF-8 text looks like after
# being decoded as latin-1 or cp1252.
MOJIBAKE_REGEX = re.compile(r'Ã[\x80-\xff]')


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the placeholders in a translation match the source text.
    Reordering is allowed; dropping, adding or repeating a placeholder is not.

    Args:
        base_string: The source text.
        target_string: The translated text.

    Returns:
        True if both strings carry the same multiset of placeholders.
    """
    base_placeholders = Counter(PLACEHOLDER_REGEX.findall(base_string))
    target_placeholders = Counter(PLACEHOLDER_REGEX.findall(target_string))

    return base_placeholders == target_placeholders


def check_encoding_and_mojibake(text: str) -> List[str]:
    """
    Checks a translated string for common mojibake patterns.

    Args:
        text: The string to check.

    Returns:
        A list of error messages. An empty list means the string is clean.
    """
    errors = []

    if MOJIBAKE_REGEX.search(text):
        errors.append("Potential mojibake detected. Found patterns like 'Ã¼', 'Ã¤', etc.")

    if '\uFFFD' in text:
        errors.append("Text contains the Unicode replacement character (\uFFFD), "
                      "indicating an encoding/decoding error.")

    return errors


def validate_translation(original: str, translated: str) -> List[str]:
    """
    Run every per-reply check on a model translation.

    Problems already present in the source are not held against the reply.

    Args:
        original: The source text sent to the model.
        translated: The cleaned model reply.

    Returns:
        A list of error messages. An empty list means the reply can be used.
    """
    errors = []
    if not check_placeholder_parity(original, translated):
        errors.append("Placeholder mismatch between source and translation.")
    if not check_encoding_and_mojibake(original):
        errors.extend(check_encoding_and_mojibake(translated))
    return errors
