"""
Name-based exclusion of listings that are not service providers.

Scraped searches for "pool builders" or "painters" also return supply stores,
public pools, art studios, restaurants and the like. These rules catch the
obvious ones by business name before any lead reaches the aggregation:

  1. per-category allow patterns (a match keeps the lead outright)
  2. per-category exclude patterns (regexes, e.g. names ending in " Pool")
  3. universal terms (retail, dealerships, banks, hotels, ...)
  4. per-category terms

Terms match whole words, case-insensitively. The rules are data in the
`exclusions` section of the analysis YAML. The OpenAI classifier in
services/classifier.py is the expensive second opinion for what slips through.
"""
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Pattern, Tuple

from leadintel.errors import ConfigurationError

logger = logging.getLogger('services.lead_filtering')


class Exclusion(NamedTuple):
    excluded: bool
    reason: Optional[str] = None


NOT_EXCLUDED = Exclusion(False)


@dataclass(frozen=True)
class PatternRule:
    """Regex rules for one category. `allow` wins over `exclude`."""
    reason: str
    allow: Tuple[Pattern, ...] = ()
    exclude: Tuple[Pattern, ...] = ()


@dataclass(frozen=True)
class ExclusionRules:
    universal: Tuple[str, ...] = ()
    by_category: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    patterns: Dict[str, PatternRule] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, '_universal_re', _terms_regex(self.universal))
        object.__setattr__(self, '_category_re', {
            category: _terms_regex(terms) for category, terms in self.by_category.items()
        })

    @property
    def is_empty(self) -> bool:
        return not (self.universal or self.by_category or self.patterns)

    def check(self, business_name, category: Optional[str] = None) -> Exclusion:
        """Should a listing with this name, found under `category`, be excluded?"""
        if not isinstance(business_name, str) or not business_name.strip():
            return NOT_EXCLUDED

        rule = self.patterns.get(category) if category else None
        if rule is not None:
            if any(p.search(business_name) for p in rule.allow):
                return NOT_EXCLUDED
            for pattern in rule.exclude:
                if pattern.search(business_name):
                    return Exclusion(True, f'{rule.reason} pattern: "{business_name}"')

        match = self._universal_re.search(business_name) if self._universal_re else None
        if match:
            return Exclusion(True, f'Universal exclusion: "{match.group(0).lower()}"')

        category_re = self._category_re.get(category) if category else None
        match = category_re.search(business_name) if category_re else None
        if match:
            return Exclusion(True, f'Category exclusion ({category}): "{match.group(0).lower()}"')

        return NOT_EXCLUDED


def _terms_regex(terms: Iterable[str]) -> Optional[Pattern]:
    # Longest first so "home depot rental" reports over "home depot"
    ordered = sorted({t.strip().lower() for t in terms if t and t.strip()}, key=lambda t: (-len(t), t))
    if not ordered:
        return None
    alternation = '|'.join(re.escape(t) for t in ordered)
    return re.compile(rf'(?<!\w)(?:{alternation})(?!\w)', re.IGNORECASE)


# ── Filtering leads ─────────────────────────────────────────────────────────

@dataclass
class FilterResult:
    kept: List[dict] = field(default_factory=list)
    excluded: List[dict] = field(default_factory=list)

    def summary(self):
        return {'kept': len(self.kept), 'excluded': len(self.excluded)}


def business_name_of(lead) -> str:
    return lead.get('company_name') or lead.get('name') or ''


def filter_service_businesses(leads: Iterable, rules: ExclusionRules,
                              resolver=None, category: Optional[str] = None) -> FilterResult:
    """
    Split leads into kept / excluded by business name.

    Category-specific rules apply to `category` when given, otherwise to each
    lead's own service_type resolved through `resolver` (core categories only).
    Rows that are not mappings are kept and left for the aggregator to tally.
    """
    result = FilterResult()
    for lead in leads:
        if not isinstance(lead, Mapping):
            result.kept.append(lead)
            continue

        lead_category = category
        if lead_category is None and resolver is not None:
            resolution = resolver.resolve(lead.get('service_type'))
            lead_category = resolution.canonical if resolution.is_core else None

        name = business_name_of(lead)
        exclusion = rules.check(name, lead_category)
        if exclusion.excluded:
            result.excluded.append({
                'id': lead.get('id'),
                'name': name,
                'city': lead.get('city'),
                'state': lead.get('state'),
                'category': lead_category,
                'reason': exclusion.reason,
            })
        else:
            result.kept.append(lead)

    if result.excluded:
        logger.debug("Excluded %d of %d leads by name", len(result.excluded),
                     len(result.excluded) + len(result.kept))
    return result


def exclusion_summary(rules: ExclusionRules, category: Optional[str] = None) -> dict:
    """How many rules apply to a category."""
    specific = len(rules.by_category.get(category, ())) if category else 0
    rule = rules.patterns.get(category) if category else None
    pattern_count = len(rule.allow) + len(rule.exclude) if rule else 0
    return {
        'universal': len(rules.universal),
        'category_specific': specific,
        'patterns': pattern_count,
        'total': len(rules.universal) + specific + pattern_count,
    }


# ── Building from raw YAML ──────────────────────────────────────────────────

def build_exclusion_rules(raw, categories: Iterable[str] = ()) -> ExclusionRules:
    """
    Build rules from the YAML `exclusions` section.

    Category keys must be canonical categories when `categories` is given.
    Invalid regexes raise ConfigurationError.
    """
    if raw is None:
        return ExclusionRules()
    if not isinstance(raw, dict):
        raise ConfigurationError("exclusions must be a mapping")

    known = set(categories)

    universal = raw.get('universal') or []
    if not isinstance(universal, list):
        raise ConfigurationError("exclusions.universal must be a list of terms")

    by_category = {}
    for category, terms in _mapping(raw.get('categories'), 'exclusions.categories').items():
        _check_category(category, known, 'exclusions.categories')
        if not isinstance(terms, list):
            raise ConfigurationError(f"exclusions.categories[{category!r}] must be a list of terms")
        by_category[category] = tuple(str(t) for t in terms)

    patterns = {}
    for category, entry in _mapping(raw.get('patterns'), 'exclusions.patterns').items():
        _check_category(category, known, 'exclusions.patterns')
        if not isinstance(entry, dict):
            raise ConfigurationError(f"exclusions.patterns[{category!r}] must be a mapping")
        patterns[category] = PatternRule(
            reason=str(entry.get('reason') or 'Excluded'),
            allow=_compile_all(entry.get('allow'), category),
            exclude=_compile_all(entry.get('exclude'), category),
        )

    return ExclusionRules(
        universal=tuple(str(t) for t in universal),
        by_category=by_category,
        patterns=patterns,
    )


def _mapping(raw, label) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{label} must be a mapping")
    return raw


def _check_category(category, known, label):
    if known and category not in known:
        raise ConfigurationError(f"{label} names unknown category {category!r}")


def _compile_all(raw, category) -> Tuple[Pattern, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError(f"Patterns for {category!r} must be a list of regexes")
    compiled = []
    for expression in raw:
        try:
            compiled.append(re.compile(expression, re.IGNORECASE))
        except (re.error, TypeError) as e:
            raise ConfigurationError(f"Invalid exclusion pattern {expression!r} for {category!r}: {e}") from e
    return tuple(compiled)
