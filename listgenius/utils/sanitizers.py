"""
Input and listing-output sanitization
Etsy tag rules and XSS stripping for user-supplied text
"""
import re
from typing import Iterable, List

from ..config import FORBIDDEN_TAG_SYMBOLS, TAG_MAX_LENGTH


def sanitize_input(content: str) -> str:
    """
    Strip markup and script vectors from user text
    Args:
        content: Raw text from a CSV cell, request body, or model output
    Returns:
        Sanitized, trimmed text
    """
    if not content:
        return ""

    result = re.sub(r"[<>]", "", content)
    result = re.sub(r"javascript:", "", result, flags=re.IGNORECASE)
    result = re.sub(r"on\w+=", "", result, flags=re.IGNORECASE)

    return result.strip()


def sanitize_tag(tag: str) -> str:
    """
    Make a tag or material Etsy-safe
    Args:
        tag: Raw tag text
    Returns:
        Tag without forbidden symbols or commas, at most 20 characters
    """
    if not tag:
        return ""

    result = tag
    for symbol in FORBIDDEN_TAG_SYMBOLS:
        result = result.replace(symbol, "")

    # Lists are comma-joined in CSV cells
    result = result.replace(",", " ")
    result = re.sub(r"\s{2,}", " ", result).strip()

    if len(result) > TAG_MAX_LENGTH:
        result = result[:TAG_MAX_LENGTH].strip()

    return result


def is_valid_tag(tag: str) -> bool:
    """Non-empty, within the length limit and free of forbidden symbols"""
    if not tag or len(tag) > TAG_MAX_LENGTH:
        return False
    return not any(symbol in tag for symbol in FORBIDDEN_TAG_SYMBOLS)


def normalize_tag_list(values: Iterable[str], count: int, placeholder: str) -> List[str]:
    """
    Produce exactly `count` sanitized, de-duplicated entries
    Args:
        values: Raw entries from the model
        count: Required number of entries
        placeholder: Prefix for padding entries, e.g. "tag" gives tag12, tag13
    Returns:
        List of exactly `count` entries
    """
    result: List[str] = []
    seen = set()

    for value in values or []:
        if not isinstance(value, str):
            continue
        cleaned = sanitize_tag(value)
        if not is_valid_tag(cleaned) or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        result.append(cleaned)
        if len(result) == count:
            break

    n = len(result)
    while len(result) < count:
        n += 1
        padding = f"{placeholder}{n}"
        if padding.lower() in seen:
            continue
        result.append(padding)

    return result


def extract_focus_keywords(keywords: Iterable[str]) -> List[str]:
    """Trim keywords and drop empties, preserving order"""
    return [k.strip() for k in keywords if k and k.strip()]


def split_list_cell(value: str) -> List[str]:
    """Split a keyword cell on comma, semicolon or pipe"""
    if not value:
        return []
    return [item.strip() for item in re.split(r"[,;|]", value) if item.strip()]
