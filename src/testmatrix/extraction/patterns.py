"""
Pattern matching for test titles and file paths.

Compiles the keyword tables from :class:`~testmatrix.config.ExtractionRules`
once and answers the questions the extractor asks of free text: which
feature, which condition, which tags, and which ``TC-<n>`` code.
"""

import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Protocol, Tuple

from testmatrix import logger
from testmatrix.config import ExtractionRules, KeywordRule
from testmatrix.exceptions import ExtractionError

MARKER_TEMPLATE = r"\[{name}\s*:\s*([^\]]+?)\s*\]"

STRUCTURED_TAG = re.compile(r"^@?(feature|condition)\s*[=:]\s*(.+)$", re.IGNORECASE)


class LoggerProvider(Protocol):
    """Protocol for the logger used by the matcher."""

    def debug(self, message: str) -> None:
        ...


class PatternMatcher:
    """
    Infers feature, condition and tags from free text.

    Feature and condition tables are ordered; the first matching rule wins.
    Every matching tag rule contributes its tag.
    """

    def __init__(
        self,
        rules: Optional[ExtractionRules] = None,
        logger_provider: Optional[LoggerProvider] = None
    ):
        self.rules = rules if rules is not None else ExtractionRules()
        self._logger = logger_provider if logger_provider is not None else logger

        self._features = self._compile_rules(self.rules.feature_rules, "feature")
        self._conditions = self._compile_rules(self.rules.condition_rules, "condition")
        self._tags = self._compile_rules(self.rules.tag_rules, "tag")
        self._test_id = self._compile(self.rules.test_id_pattern, "test_id", 0)
        self._feature_marker = re.compile(MARKER_TEMPLATE.format(name="FEATURE"), re.IGNORECASE)
        self._condition_marker = re.compile(MARKER_TEMPLATE.format(name="CONDITION"), re.IGNORECASE)

    def _compile(self, pattern: str, kind: str, index: int) -> Pattern[str]:
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ExtractionError(
                f"Failed to compile {kind} pattern '{pattern}'",
                error_code="EXTRACT_002",
                context={"pattern": pattern, "kind": kind, "pattern_index": index, "error": str(e)},
            ) from e

    def _compile_rules(self, rules: List[KeywordRule], kind: str) -> List[Tuple[Pattern[str], str]]:
        compiled = []
        for i, rule in enumerate(rules):
            compiled.append((self._compile(rule.pattern, kind, i), rule.value))
        return compiled

    @staticmethod
    def _first(table: List[Tuple[Pattern[str], str]], text: str) -> Optional[str]:
        for pattern, value in table:
            if pattern.search(text):
                return value
        return None

    def feature_marker(self, title: str) -> Optional[str]:
        """Value of a ``[FEATURE:X]`` marker in ``title``."""
        match = self._feature_marker.search(title)
        return match.group(1) if match else None

    def condition_marker(self, title: str) -> Optional[str]:
        """Value of a ``[CONDITION:Y]`` marker in ``title``."""
        match = self._condition_marker.search(title)
        return match.group(1) if match else None

    def infer_feature(self, *texts: str) -> Optional[str]:
        """
        Feature for the first text that yields one.

        Bracket markers take precedence over the keyword table within each
        text; texts are tried in the order given.
        """
        for text in texts:
            if not text:
                continue
            value = self.feature_marker(text) or self._first(self._features, text)
            if value:
                self._logger.debug(f"Inferred feature '{value}' from '{text}'")
                return value
        return None

    def infer_condition(self, *texts: str) -> Optional[str]:
        for text in texts:
            if not text:
                continue
            value = self.condition_marker(text) or self._first(self._conditions, text)
            if value:
                return value
        return None

    def infer_tags(self, *texts: str) -> FrozenSet[str]:
        """Union of tags whose rule matches any of ``texts``."""
        found = set()
        for text in texts:
            if not text:
                continue
            for pattern, tag in self._tags:
                if pattern.search(text):
                    found.add(tag)
        return frozenset(found)

    def find_test_id(self, title: str) -> Optional[str]:
        match = self._test_id.search(title or "")
        return match.group(0).upper() if match else None


def split_structured_tags(tags: Iterable[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Separate ``feature=X`` / ``condition=Y`` tags from plain tags.

    Returns:
        ``({"feature": X, "condition": Y}, plain_tags)``; later structured
        tags override earlier ones.
    """
    structured: Dict[str, str] = {}
    plain: List[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            continue
        match = STRUCTURED_TAG.match(tag.strip())
        if match:
            structured[match.group(1).lower()] = match.group(2).strip()
        else:
            plain.append(tag.strip())
    return structured, plain


__all__ = ["PatternMatcher", "LoggerProvider", "split_structured_tags"]
