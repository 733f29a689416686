"""
Exclusion rules for files inside a backup request.

A rule is either a literal file name (``heads.all``) or an extension
wildcard (``*.all``). Rules only ever look at a file's base name.
"""

from typing import Iterable, List

EXTENSION_PREFIX = "*."


class ExclusionRule:
    """A single compiled exclusion pattern."""

    __slots__ = ("pattern", "is_extension_rule", "_target")

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.is_extension_rule = pattern.startswith(EXTENSION_PREFIX)
        if self.is_extension_rule:
            self._target = pattern[len(EXTENSION_PREFIX) :]
        else:
            self._target = pattern

    def matches(self, file_name: str) -> bool:
        """Return True if ``file_name`` (a base name) is hit by this rule."""
        if not self.is_extension_rule:
            return file_name == self._target

        if "." not in file_name:
            return False
        return file_name.rsplit(".", 1)[1] == self._target

    def __eq__(self, other) -> bool:
        return isinstance(other, ExclusionRule) and other.pattern == self.pattern

    def __hash__(self) -> int:
        return hash(self.pattern)

    def __repr__(self) -> str:
        return f"ExclusionRule({self.pattern!r})"


def compile_rules(patterns: Iterable[str]) -> List[ExclusionRule]:
    """Build rules from raw pattern strings, dropping empty ones."""
    return [ExclusionRule(pattern) for pattern in patterns if pattern]


def is_excluded(candidate_file_name: str, rules: Iterable[ExclusionRule]) -> bool:
    """
    Check whether a file should be left out of the archive.

    Args:
        candidate_file_name: Base name of the file, without directory components
        rules: Compiled exclusion rules of the request the file belongs to

    Returns:
        True if any rule matches, False for an empty rule list or no match
    """
    return any(rule.matches(candidate_file_name) for rule in rules)
