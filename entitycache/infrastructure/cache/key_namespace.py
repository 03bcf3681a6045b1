"""
Key Namespace

Every key a CacheService touches is ``{system_name}:{contract_name}:{key}``.
Each contract gets its own prefix, so two contracts never collide.
"""

import re
from dataclasses import dataclass

from entitycache.core.config.constants import KEY_SEPARATOR

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


@dataclass(frozen=True)
class KeyNamespace:
    """
    Builds fully-qualified cache keys.

    Example:
        >>> KeyNamespace("Person", "RedisPerson").complete("5")
        'Person:RedisPerson:5'
    """

    system_name: str
    contract_name: str

    @property
    def prefix(self) -> str:
        return f"{self.system_name}{KEY_SEPARATOR}{self.contract_name}{KEY_SEPARATOR}"

    def complete(self, key: str | int) -> str:
        return f"{self.prefix}{key}"

    def pattern(self, key_prefix: str = "") -> str:
        """
        Glob pattern matching every key of this namespace starting with ``key_prefix``.

        ``*``, ``?``, ``[``, ``]`` and backslashes in the names and the prefix
        are escaped, so they only match themselves.
        """
        return f"{_glob_escape(self.prefix)}{_glob_escape(key_prefix)}*"


def _glob_escape(text: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", text)
