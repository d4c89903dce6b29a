"""
Service taxonomy — the closed set of canonical service categories and the raw
category strings each one absorbs.

The taxonomy is data. It is built from the `taxonomy` section of the analysis
YAML and never derived from lead rows.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from leadintel.errors import ConfigurationError

logger = logging.getLogger('analysis.taxonomy')


@dataclass(frozen=True)
class ServiceTaxonomy:
    """Canonical categories (declaration order matters) plus alias sets."""
    categories: Tuple[str, ...]
    aliases: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    other_groups: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def core_total(self) -> int:
        return len(self.categories)

    def aliases_for(self, category: str) -> Tuple[str, ...]:
        return self.aliases.get(category, ())

    def validate(self):
        """Raise ConfigurationError if the taxonomy cannot drive a report."""
        if not self.categories:
            raise ConfigurationError("Taxonomy has no canonical categories")

        seen = {}
        for name in self.categories:
            if not isinstance(name, str) or not name.strip():
                raise ConfigurationError(f"Invalid canonical category name: {name!r}")
            folded = name.casefold()
            if folded in seen:
                raise ConfigurationError(
                    f"Duplicate canonical category: {name!r} (already declared as {seen[folded]!r})"
                )
            seen[folded] = name

        for category, alias_list in self.aliases.items():
            if category not in self.categories:
                raise ConfigurationError(f"Aliases declared for unknown category: {category!r}")
            for alias in alias_list:
                if not isinstance(alias, str) or not alias.strip():
                    raise ConfigurationError(f"Invalid alias {alias!r} for {category!r}")

        for group in self.other_groups:
            if group.casefold() in seen:
                raise ConfigurationError(
                    f"Other-service group {group!r} collides with a canonical category"
                )

    def alias_conflicts(self) -> Dict[str, List[str]]:
        """
        Raw strings claimed by more than one canonical category.

        Returns {alias (lower-cased): [categories in declaration order]}.
        The resolver still answers deterministically (first category wins);
        these are data-quality defects for the taxonomy author.
        """
        claims: Dict[str, List[str]] = {}
        for category in self.categories:
            for alias in self.aliases_for(category):
                owners = claims.setdefault(alias.casefold(), [])
                if category not in owners:
                    owners.append(category)
        return {alias: owners for alias, owners in claims.items() if len(owners) > 1}


def build_taxonomy(raw: dict) -> ServiceTaxonomy:
    """Build and validate a ServiceTaxonomy from the YAML `taxonomy` section."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Taxonomy section must be a mapping")

    categories = raw.get('categories') or []
    if not isinstance(categories, list):
        raise ConfigurationError("taxonomy.categories must be a list")

    taxonomy = ServiceTaxonomy(
        categories=tuple(categories),
        aliases=_alias_map(raw.get('aliases'), 'taxonomy.aliases'),
        other_groups=_alias_map(raw.get('other_groups'), 'taxonomy.other_groups'),
    )
    taxonomy.validate()

    conflicts = taxonomy.alias_conflicts()
    if conflicts:
        logger.warning(
            "Taxonomy has %d alias(es) claimed by several categories; first declared wins: %s",
            len(conflicts), ', '.join(sorted(conflicts)),
        )
    return taxonomy


def _alias_map(raw, label) -> Dict[str, Tuple[str, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{label} must be a mapping of name -> list of aliases")
    result = {}
    for name, alias_list in raw.items():
        if alias_list is None:
            alias_list = []
        if not isinstance(alias_list, list):
            raise ConfigurationError(f"{label}[{name!r}] must be a list")
        result[name] = tuple(alias_list)
    return result
