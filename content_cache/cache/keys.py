"""Cache key derivation.

Generation requests arrive in loose shapes: camelCase or snake_case keys,
keywords as a list or as a comma-delimited string, numbers and flags as
strings. Everything is reduced to one canonical dictionary before hashing so
that logically equal requests share a fingerprint.
"""

import hashlib
import json
from collections import abc
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

DEFAULT_WORD_COUNT = 500
DEFAULT_DOMAIN = "default"
KEYWORD_DELIMITER = ","

_FALSE_STRINGS = {"", "0", "false", "no", "off", "none", "null"}

# canonical name -> accepted input names
_FIELD_ALIASES = {
    "domain": ("domain",),
    "topic": ("topic",),
    "keywords": ("keywords",),
    "target_audience": ("target_audience", "targetAudience"),
    "tone": ("tone",),
    "word_count": ("word_count", "wordCount"),
    "include_images": ("include_images", "includeImages"),
    "seo_optimized": ("seo_optimized", "seoOptimized"),
}

KeywordInput = Union[str, Iterable[str], None]


def normalize_text(value: Any) -> Optional[str]:
    """Trim and lower-case a string field, mapping missing values to None."""
    if value is None:
        return None
    return str(value).strip().lower()


def normalize_keywords(keywords: KeywordInput) -> List[str]:
    """Return the canonical keyword list for a sequence or delimited string.

    Entries are trimmed, empty entries dropped and the result sorted.

    Args:
        keywords: Keywords as a sequence of strings or a comma-delimited string

    Returns:
        Sorted list of non-empty keywords
    """
    if keywords is None:
        return []
    if isinstance(keywords, str):
        parts = keywords.split(KEYWORD_DELIMITER)
    else:
        parts = [str(keyword) for keyword in keywords]
    return sorted(part.strip() for part in parts if part.strip())


def is_keyword_input(value: Any) -> bool:
    """Check that keywords arrived as a delimited string or a sequence of strings."""
    if value is None or isinstance(value, str):
        return True
    return isinstance(value, abc.Iterable) and not isinstance(value, (abc.Mapping, bytes))


def coerce_word_count(value: Any, default: int = DEFAULT_WORD_COUNT) -> int:
    """Coerce a word count to a positive int, falling back to the default."""
    if isinstance(value, bool):
        return default
    try:
        count = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        return default
    return count if count > 0 else default


def coerce_flag(value: Any) -> bool:
    """Coerce a loosely typed flag to a strict boolean."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _as_mapping(params: Any) -> Mapping[str, Any]:
    if isinstance(params, Mapping):
        return params
    if hasattr(params, "model_dump"):
        return params.model_dump()
    raise TypeError(f"Cannot derive a cache key from {type(params).__name__}")


def _pick(params: Mapping[str, Any], field: str) -> Any:
    for name in _FIELD_ALIASES[field]:
        if name in params:
            return params[name]
    return None


def normalize_parameters(params: Any) -> Dict[str, Any]:
    """Normalize blog generation parameters into their canonical form.

    Args:
        params: Mapping or request model with generation parameters

    Returns:
        Canonical parameter dictionary used for hashing and storage
    """
    params = _as_mapping(params)
    return {
        "domain": normalize_text(_pick(params, "domain")) or DEFAULT_DOMAIN,
        "topic": normalize_text(_pick(params, "topic")),
        "keywords": KEYWORD_DELIMITER.join(normalize_keywords(_pick(params, "keywords"))),
        "target_audience": normalize_text(_pick(params, "target_audience")),
        "tone": normalize_text(_pick(params, "tone")),
        "word_count": coerce_word_count(_pick(params, "word_count")),
        "include_images": coerce_flag(_pick(params, "include_images")),
        "seo_optimized": coerce_flag(_pick(params, "seo_optimized")),
    }


def normalize_bag(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize an arbitrary parameter bag for other artifact types.

    Strings are trimmed and lower-cased, string sequences are canonicalized
    like keywords, everything else is kept as given.
    """
    normalized: Dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, str):
            normalized[key] = normalize_text(value)
        elif isinstance(value, (list, tuple, set, frozenset)):
            normalized[key] = KEYWORD_DELIMITER.join(normalize_keywords(value))
        else:
            normalized[key] = value
    return normalized


def canonical_json(normalized: Mapping[str, Any]) -> str:
    """Serialize a normalized parameter set deterministically."""
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(normalized: Mapping[str, Any]) -> str:
    """Hash an already-normalized parameter bag into a hex SHA-256 digest."""
    return hashlib.sha256(canonical_json(normalized).encode("utf-8")).hexdigest()


def generate_cache_key(params: Any) -> str:
    """Derive the fingerprint for blog generation parameters.

    Args:
        params: Mapping or request model with generation parameters

    Returns:
        64 character hex digest
    """
    return fingerprint(normalize_parameters(params))
