"""Include/exclude filtering of input URL lists."""

import re
from typing import List, Optional, Pattern, Sequence, Union
from urllib.parse import urlparse

from ..exceptions import ConfigurationError


Patterns = Union[str, Sequence[str], None]


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def compile_patterns(patterns: Patterns, kind: str = "include") -> List[Pattern]:
    """Compile case-insensitive regexes.

    Raises:
        ConfigurationError: If a pattern is not a valid regex
    """
    if patterns is None:
        return []
    if isinstance(patterns, str):
        patterns = [patterns]

    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            raise ConfigurationError(f"Invalid {kind} pattern '{pattern}': {e}") from e
    return compiled


def filter_urls(
    urls: Sequence[str],
    include: Patterns = None,
    exclude: Patterns = None,
    max_pages: Optional[int] = None
) -> List[str]:
    """Keep URLs matching any include pattern and no exclude pattern.

    Exclusion wins over inclusion. Without include patterns every URL is a
    candidate. The result keeps input order and is capped at ``max_pages``.
    """
    includes = compile_patterns(include, "include")
    excludes = compile_patterns(exclude, "exclude")

    kept = []
    for url in urls:
        if includes and not any(p.search(url) for p in includes):
            continue
        if any(p.search(url) for p in excludes):
            continue
        kept.append(url)

    if max_pages is not None and max_pages >= 0:
        kept = kept[:max_pages]
    return kept
