"""
Category resolver — maps a raw `service_type` string to a canonical category,
an "other" bucket, or uncategorized.

Lookup order:
  1. canonical category name (case-insensitive)
  2. canonical aliases, first category in declaration order wins
  3. other-service group names / aliases
  4. no match -> other bucket under the raw string itself
"""
from typing import Dict, NamedTuple, Optional

from leadintel.analysis.taxonomy import ServiceTaxonomy


class Resolution(NamedTuple):
    canonical: Optional[str]
    is_core: bool


UNCATEGORIZED = Resolution(None, False)


class CategoryResolver:
    """Pure, precomputed lookup over a ServiceTaxonomy. Safe to share across runs."""

    def __init__(self, taxonomy: ServiceTaxonomy):
        self.taxonomy = taxonomy
        self._core_names: Dict[str, str] = {}
        self._core_aliases: Dict[str, str] = {}
        self._other: Dict[str, str] = {}

        for category in taxonomy.categories:
            self._core_names.setdefault(category.casefold(), category)
        for category in taxonomy.categories:
            for alias in taxonomy.aliases_for(category):
                self._core_aliases.setdefault(alias.casefold(), category)
        for group, alias_list in taxonomy.other_groups.items():
            self._other.setdefault(group.casefold(), group)
            for alias in alias_list:
                self._other.setdefault(alias.casefold(), group)

    def resolve(self, raw) -> Resolution:
        if not isinstance(raw, str) or not raw.strip():
            return UNCATEGORIZED

        folded = raw.casefold()

        name = self._core_names.get(folded)
        if name is not None:
            return Resolution(name, True)

        name = self._core_aliases.get(folded)
        if name is not None:
            return Resolution(name, True)

        name = self._other.get(folded)
        if name is not None:
            return Resolution(name, False)

        return Resolution(raw, False)

    __call__ = resolve
