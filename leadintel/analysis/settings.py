"""
Analysis configuration — taxonomy, watched categories, regions and thresholds.

The data comes from YAML (analysis_config.yaml next to this module, or the file
named by ANALYSIS_CONFIG_PATH), cached in memory after the first load. The
ingestion knobs come from the environment via leadintel.config.
"""
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

import yaml

from leadintel import config
from leadintel.analysis.opportunities import TierThresholds, WatchedCategory
from leadintel.analysis.taxonomy import ServiceTaxonomy, build_taxonomy
from leadintel.errors import ConfigurationError
from leadintel.services.lead_filtering import ExclusionRules, build_exclusion_rules

logger = logging.getLogger('analysis.settings')

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'analysis_config.yaml')

_analysis_config = None


@dataclass(frozen=True)
class AnalysisConfig:
    taxonomy: ServiceTaxonomy
    watched: Tuple[WatchedCategory, ...] = ()
    hot_categories: Tuple[str, ...] = ()
    state_to_region: Dict[str, str] = field(default_factory=dict)
    min_market_size: int = 10
    max_coverage_percent: float = 5.0
    tiers: TierThresholds = TierThresholds()
    regional_gap_percent: float = 1.0
    prioritize_emerging: bool = False
    normalize_market_keys: bool = True
    exclude_non_providers: bool = False
    exclusions: ExclusionRules = field(default_factory=ExclusionRules)
    page_size: int = config.INGEST_PAGE_SIZE
    retry_count: int = config.INGEST_RETRY_COUNT
    retry_backoff: float = config.INGEST_RETRY_BACKOFF
    timeout_seconds: float = config.INGEST_TIMEOUT_SECONDS
    version: str = 'default'

    def validate(self):
        """Raise ConfigurationError for any setting that would make a run meaningless."""
        self.taxonomy.validate()

        if not _is_int(self.min_market_size) or self.min_market_size <= 0:
            raise ConfigurationError(f"min_market_size must be a positive integer, got {self.min_market_size!r}")
        _check_percent('max_coverage_percent', self.max_coverage_percent)
        _check_percent('tiers.very_low', self.tiers.very_low)
        _check_percent('tiers.low', self.tiers.low)
        if self.tiers.very_low > self.tiers.low:
            raise ConfigurationError(
                f"tiers.very_low ({self.tiers.very_low}) must not exceed tiers.low ({self.tiers.low})"
            )
        _check_percent('regional_gap_percent', self.regional_gap_percent)

        seen = set()
        for category in self.watched:
            if not isinstance(category.name, str) or not category.name.strip():
                raise ConfigurationError(f"Invalid watched category name: {category.name!r}")
            if category.name in seen:
                raise ConfigurationError(f"Duplicate watched category: {category.name!r}")
            seen.add(category.name)
            if not _is_number(category.growth_weight) or category.growth_weight < 0:
                raise ConfigurationError(
                    f"Growth weight for {category.name!r} must be a non-negative number, "
                    f"got {category.growth_weight!r}"
                )

        if not _is_int(self.page_size) or self.page_size <= 0:
            raise ConfigurationError(f"page_size must be a positive integer, got {self.page_size!r}")
        if not _is_int(self.retry_count) or self.retry_count < 0:
            raise ConfigurationError(f"retry_count must be >= 0, got {self.retry_count!r}")
        if not _is_number(self.retry_backoff) or self.retry_backoff < 0:
            raise ConfigurationError(f"retry_backoff must be >= 0, got {self.retry_backoff!r}")
        if not _is_number(self.timeout_seconds) or self.timeout_seconds <= 0:
            raise ConfigurationError(f"timeout_seconds must be positive, got {self.timeout_seconds!r}")

        unknown_hot = [name for name in self.hot_categories if name not in seen]
        if unknown_hot:
            logger.warning("Hot categories not in the watched list are ignored: %s", ', '.join(unknown_hot))

        known = {name.casefold() for name in self.taxonomy.categories}
        known.update(group.casefold() for group in self.taxonomy.other_groups)
        unmapped = [c.name for c in self.watched if c.name.casefold() not in known]
        if unmapped:
            logger.warning(
                "Watched categories with no canonical category or other group are counted from raw "
                "service_type strings only: %s", ', '.join(unmapped),
            )
        if self.exclude_non_providers and self.exclusions.is_empty:
            logger.warning("exclude_non_providers is on but no exclusion rules are configured")

    def with_overrides(self, **overrides) -> 'AnalysisConfig':
        """Copy with some thresholds replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if 'tiers' in changes and isinstance(changes['tiers'], dict):
            changes['tiers'] = TierThresholds(**changes['tiers'])
        try:
            return replace(self, **changes)
        except TypeError as e:
            raise ConfigurationError(f"Unknown analysis setting: {e}") from e


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_percent(name, value):
    if not _is_number(value) or not 0 <= value <= 100:
        raise ConfigurationError(f"{name} must be a percentage in [0, 100], got {value!r}")


# ── Building from raw YAML ──────────────────────────────────────────────────

def build_state_to_region(raw_regions) -> Dict[str, str]:
    """Invert {region: [states]} into {state: region}. A state may belong to one region only."""
    if raw_regions is None:
        return {}
    if not isinstance(raw_regions, dict):
        raise ConfigurationError("regions must be a mapping of region -> list of states")

    state_to_region = {}
    for region, states in raw_regions.items():
        if not isinstance(states, list):
            raise ConfigurationError(f"regions[{region!r}] must be a list of state codes")
        for state in states:
            code = str(state).strip().upper()
            if code in state_to_region and state_to_region[code] != region:
                raise ConfigurationError(
                    f"State {code} is assigned to both {state_to_region[code]!r} and {region!r}"
                )
            state_to_region[code] = region
    return state_to_region


def _build_watched(raw) -> Tuple[WatchedCategory, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("watched_categories must be a list")
    watched = []
    for entry in raw:
        if not isinstance(entry, dict) or 'name' not in entry:
            raise ConfigurationError(f"Invalid watched category entry: {entry!r}")
        watched.append(WatchedCategory(name=entry['name'], growth_weight=entry.get('growth_weight', 0.0)))
    return tuple(watched)


def build_analysis_config(raw: dict) -> AnalysisConfig:
    """Build and validate an AnalysisConfig from a parsed YAML document."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Analysis config must be a YAML mapping")

    thresholds = raw.get('thresholds') or {}
    if not isinstance(thresholds, dict):
        raise ConfigurationError("thresholds must be a mapping")
    tiers = thresholds.get('tiers') or {}
    if not isinstance(tiers, dict):
        raise ConfigurationError("thresholds.tiers must be a mapping")

    hot = raw.get('hot_categories') or []
    if not isinstance(hot, list):
        raise ConfigurationError("hot_categories must be a list")

    taxonomy = build_taxonomy(raw.get('taxonomy'))
    analysis_config = AnalysisConfig(
        taxonomy=taxonomy,
        watched=_build_watched(raw.get('watched_categories')),
        hot_categories=tuple(hot),
        state_to_region=build_state_to_region(raw.get('regions')),
        min_market_size=thresholds.get('min_market_size', 10),
        max_coverage_percent=thresholds.get('max_coverage_percent', 5.0),
        tiers=TierThresholds(
            very_low=tiers.get('very_low', 1.0),
            low=tiers.get('low', 3.0),
        ),
        regional_gap_percent=thresholds.get('regional_gap_percent', 1.0),
        prioritize_emerging=bool(thresholds.get('prioritize_emerging', False)),
        normalize_market_keys=bool(thresholds.get('normalize_market_keys', True)),
        exclude_non_providers=bool(thresholds.get('exclude_non_providers', False)),
        exclusions=build_exclusion_rules(raw.get('exclusions'), taxonomy.categories),
        version=str(raw.get('version', 'default')),
    )
    analysis_config.validate()
    return analysis_config


# ── Loading ─────────────────────────────────────────────────────────────────

def load_analysis_config(path: Optional[str] = None) -> AnalysisConfig:
    """
    Load the analysis config from YAML, with an in-memory cache.

    An explicit path always re-reads and bypasses the cache. Otherwise the
    ANALYSIS_CONFIG_PATH env var, then the packaged default, is loaded once.
    Missing or malformed files raise ConfigurationError.
    """
    global _analysis_config
    if path is None and _analysis_config is not None:
        return _analysis_config

    config_path = path or config.ANALYSIS_CONFIG_PATH or DEFAULT_CONFIG_PATH
    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read analysis config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed analysis config {config_path}: {e}") from e

    loaded = build_analysis_config(raw)
    logger.info(
        "Analysis config loaded from %s (version=%s, %d categories, %d watched)",
        config_path, loaded.version, loaded.taxonomy.core_total, len(loaded.watched),
    )
    if path is None:
        _analysis_config = loaded
    return loaded


def reset_analysis_config():
    """Drop the cached config so the next load re-reads the file."""
    global _analysis_config
    _analysis_config = None
