"""
Helper functions exposed to every compiled fragment.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from ..error.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Named date layouts understood by fmtdate
DATE_FORMATS = {
    "std": "{t:%A} {t.day} {t:%B %Y %H:%M}",  # Monday 2 January 2006 15:04
}

def oddoreven(i: int) -> str:
    """Return "even" or "odd" for a row index."""
    if int(i) % 2 == 0:
        return "even"
    return "odd"

def fmtdate(fmt: str, t: Optional[datetime]) -> str:
    """Format ``t`` with a named layout; unknown layouts yield an empty string."""
    layout = DATE_FORMATS.get(fmt)
    if layout is None or t is None:
        return ""
    return layout.format(t=t)

def ucfirstwords(text: str) -> str:
    """First letter of every word, uppercased ("hello big world" -> "HBW")."""
    if not text:
        return ""
    return "".join(word[0].upper() for word in str(text).split())

BUILTIN_HELPERS: Dict[str, Callable[..., Any]] = {
    "oddoreven": oddoreven,
    "fmtdate": fmtdate,
    "ucfirstwords": ucfirstwords,
}

def merge_helpers(overrides: Optional[Mapping[str, Callable[..., Any]]] = None) -> Dict[str, Callable[..., Any]]:
    """
    Merge caller supplied helpers over the built-in set.

    Caller helpers win on name collision, so a built-in can be replaced.

    Args:
        overrides: Mapping of helper name to callable

    Returns:
        New helper mapping

    Raises:
        ConfigurationError: If a helper is not callable
    """
    helpers = dict(BUILTIN_HELPERS)
    for name, func in (overrides or {}).items():
        if not callable(func):
            raise ConfigurationError(f"Helper '{name}' is not callable")
        if name in BUILTIN_HELPERS:
            logger.debug(f"Built-in helper '{name}' replaced by caller helper")
        helpers[name] = func
    return helpers
