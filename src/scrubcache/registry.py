"""Pattern registry for loading and serving compiled PII rules."""

import re
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

import yaml
import jsonschema

from scrubcache.exceptions import InvalidScope, PatternLoadError
from scrubcache.models import Category, ContentScope, Examples, PatternRule, Severity

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
DEFAULT_PATTERN_FILE = PACKAGE_DIR / "patterns" / "default.yml"
SCHEMA_FILE = PACKAGE_DIR / "schemas" / "pattern-schema.json"

_FLAG_NAMES = {
    "IGNORECASE": re.IGNORECASE,
    "MULTILINE": re.MULTILINE,
    "DOTALL": re.DOTALL,
    "UNICODE": re.UNICODE,
    "VERBOSE": re.VERBOSE,
}


def coerce_scope(scope: Union[ContentScope, str]) -> ContentScope:
    """
    Normalize a scope value.

    Raises:
        InvalidScope: If the value does not name a known scope
    """
    if isinstance(scope, ContentScope):
        return scope
    try:
        return ContentScope(scope)
    except ValueError:
        raise InvalidScope(f"Unknown content scope: {scope!r}") from None


class PatternRegistry:
    """Read-only table of category -> rule, in evaluation order.

    Iteration order is the order the rules were declared in; the scrubber
    relies on it to break ties between overlapping matches.
    """

    def __init__(
        self,
        rules: list[PatternRule],
        scope_exclusions: Optional[Mapping[ContentScope, frozenset[Category]]] = None,
    ) -> None:
        """
        Build a registry from compiled rules.

        Args:
            rules: One rule per category, in evaluation order
            scope_exclusions: Categories suppressed for each scope

        Raises:
            PatternLoadError: If a category is missing or duplicated, or two
                categories share a replacement label
        """
        by_category: dict[Category, PatternRule] = {}
        labels: dict[str, Category] = {}

        for rule in sorted(rules, key=lambda r: r.order):
            if rule.category in by_category:
                raise PatternLoadError(
                    f"Category {rule.category.value} is defined more than once"
                )
            owner = labels.get(rule.replacement_label)
            if owner is not None:
                raise PatternLoadError(
                    f"Label {rule.replacement_label} is used by both "
                    f"{owner.value} and {rule.category.value}"
                )
            by_category[rule.category] = rule
            labels[rule.replacement_label] = rule.category

        missing = [c.value for c in Category if c not in by_category]
        if missing:
            raise PatternLoadError(f"No rule defined for categories: {missing}")

        self._patterns: Mapping[Category, PatternRule] = MappingProxyType(by_category)
        exclusions = dict(scope_exclusions or {})
        self._scope_exclusions: Mapping[ContentScope, frozenset[Category]] = (
            MappingProxyType(
                {scope: frozenset(exclusions.get(scope, ())) for scope in ContentScope}
            )
        )
        self._scope_patterns: Mapping[ContentScope, tuple[PatternRule, ...]] = (
            MappingProxyType(
                {
                    scope: tuple(
                        rule
                        for rule in by_category.values()
                        if rule.category not in self._scope_exclusions[scope]
                    )
                    for scope in ContentScope
                }
            )
        )

    def all_patterns(self) -> Mapping[Category, PatternRule]:
        """Return every rule keyed by category, in evaluation order."""
        return self._patterns

    def critical_patterns(self) -> Mapping[Category, PatternRule]:
        """Return the rules whose matches block caching."""
        return MappingProxyType(
            {c: r for c, r in self._patterns.items() if r.is_critical}
        )

    def patterns_for(self, category: Union[Category, str]) -> Mapping[Category, PatternRule]:
        """Return the subset of rules for one category."""
        category = Category(category)
        return MappingProxyType({category: self._patterns[category]})

    def patterns_for_scope(self, scope: Union[ContentScope, str]) -> tuple[PatternRule, ...]:
        """Return the rules that apply to a content scope, in evaluation order."""
        return self._scope_patterns[coerce_scope(scope)]

    def excluded_for_scope(self, scope: Union[ContentScope, str]) -> frozenset[Category]:
        """Return the categories a scope suppresses."""
        return self._scope_exclusions[coerce_scope(scope)]

    def label_for(self, category: Union[Category, str]) -> str:
        """Return the canonical replacement label of a category."""
        return self._patterns[Category(category)].replacement_label

    def labels(self) -> frozenset[str]:
        """Return all replacement labels."""
        return frozenset(r.replacement_label for r in self._patterns.values())

    def __iter__(self):
        return iter(self._patterns.values())

    def __len__(self) -> int:
        """Return number of rules."""
        return len(self._patterns)

    def __repr__(self) -> str:
        """String representation."""
        return f"PatternRegistry(patterns={len(self._patterns)})"


def load_registry(
    paths: Optional[list[str]] = None,
    validate_schema: bool = True,
    validate_examples: bool = True,
) -> PatternRegistry:
    """
    Load rules from YAML files into a registry.

    Args:
        paths: List of file paths to load. If None, loads the packaged rules.
            Later files may add scope exclusions but may not redefine a
            category already loaded.
        validate_schema: Whether to validate against JSON schema
        validate_examples: Whether to validate examples against patterns

    Returns:
        PatternRegistry with loaded rules

    Raises:
        PatternLoadError: If a file is missing or fails validation
    """
    if paths is None:
        paths = [str(DEFAULT_PATTERN_FILE)]

    rules: list[PatternRule] = []
    exclusions: dict[ContentScope, set[Category]] = {}

    for path_str in paths:
        path = Path(path_str)
        if not path.exists():
            raise PatternLoadError(f"Pattern file not found: {path}")

        logger.info(f"Loading patterns from {path}")
        data = _load_yaml_file(path)

        if validate_schema:
            _validate_schema(data)

        for scope, categories in _parse_scopes(data).items():
            exclusions.setdefault(scope, set()).update(categories)

        for pattern_data in data.get("patterns", []):
            rule = _compile_rule(pattern_data, order=len(rules))
            if validate_examples and rule.examples:
                _validate_examples(rule)
            rules.append(rule)

    registry = PatternRegistry(
        rules, {scope: frozenset(cats) for scope, cats in exclusions.items()}
    )
    logger.info(f"Loaded {len(registry)} patterns from {len(paths)} file(s)")
    return registry


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PatternLoadError(f"Failed to parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise PatternLoadError(f"Pattern file is empty or not a mapping: {path}")
    return data


def _validate_schema(data: dict[str, Any]) -> None:
    """Validate pattern data against JSON schema."""
    with open(SCHEMA_FILE, "r", encoding="utf-8") as f:
        schema = yaml.safe_load(f)

    try:
        jsonschema.validate(data, schema)
    except jsonschema.ValidationError as e:
        raise PatternLoadError(f"Pattern schema validation failed: {e.message}") from e


def _parse_scopes(data: dict[str, Any]) -> dict[ContentScope, set[Category]]:
    """Parse the scope exclusion table."""
    parsed: dict[ContentScope, set[Category]] = {}
    for scope_name, scope_data in (data.get("scopes") or {}).items():
        scope = coerce_scope(scope_name)
        try:
            parsed[scope] = {Category(c) for c in scope_data.get("exclude", [])}
        except ValueError as e:
            raise PatternLoadError(f"Scope {scope_name} excludes {e}") from e
    return parsed


def _compile_rule(data: dict[str, Any], order: int) -> PatternRule:
    """Compile a single rule definition."""
    try:
        category = Category(data["category"])
        severity = Severity(data["severity"])
        pattern_str = data["pattern"]
        label = data["label"]
    except (KeyError, ValueError) as e:
        raise PatternLoadError(f"Invalid rule definition: {e}") from e

    flags = 0
    for flag_name in data.get("flags", []):
        try:
            flags |= _FLAG_NAMES[flag_name]
        except KeyError:
            raise PatternLoadError(
                f"Unknown regex flag {flag_name} for {category.value}"
            ) from None

    try:
        compiled = re.compile(pattern_str, flags)
    except re.error as e:
        raise PatternLoadError(f"Failed to compile pattern {category.value}: {e}") from e

    examples = None
    if "examples" in data:
        examples = Examples(
            match=tuple(data["examples"].get("match", [])),
            nomatch=tuple(data["examples"].get("nomatch", [])),
        )

    return PatternRule(
        category=category,
        pattern=pattern_str,
        matcher=compiled,
        severity=severity,
        replacement_label=label,
        order=order,
        description=data.get("description", ""),
        flags=tuple(data.get("flags", [])),
        examples=examples,
    )


def _validate_examples(rule: PatternRule) -> None:
    """Validate rule examples match/nomatch expectations."""
    if not rule.examples:
        return

    errors = []

    for example in rule.examples.match:
        if not rule.matcher.fullmatch(example):
            errors.append(f"Example should match but doesn't: '{example}'")

    for example in rule.examples.nomatch:
        if rule.matcher.fullmatch(example):
            errors.append(f"Example should NOT match but does: '{example}'")

    if errors:
        error_msg = f"Pattern {rule.category.value} example validation failed:\n" + "\n".join(
            errors
        )
        raise PatternLoadError(error_msg)

    logger.debug(f"Pattern {rule.category.value} examples validated successfully")
