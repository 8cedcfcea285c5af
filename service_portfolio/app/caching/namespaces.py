"""
Cache key namespaces.

Every cache key is ``prefix + discriminator``. Prefixes end with ``:`` and none
is a prefix of another, so ``prefix + "*"`` only ever matches its own group.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class KeyNamespace(str, Enum):
    """Fixed key prefixes, one per domain concept."""

    PORTFOLIO = "portfolio:"
    AI_RESULT = "ai:"
    ANALYTICS = "analytics:"
    GITHUB = "github:"
    TEMPLATE = "template:"


CACHE_KEYS: Mapping[str, str] = MappingProxyType(
    {member.name: member.value for member in KeyNamespace}
)
