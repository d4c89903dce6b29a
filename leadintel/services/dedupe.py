"""
Duplicate lead detection — read-only report of listings scraped more than once.

Leads sharing a normalized phone number are one group. Leads without a phone
are grouped when their company names are near-identical within the same
market. Nothing is deleted here; callers decide which record to keep.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

logger = logging.getLogger('services.dedupe')

_LEGAL_SUFFIXES = {'llc', 'inc', 'co', 'corp', 'company', 'ltd', 'incorporated', 'the'}
_TOKEN_RE = re.compile(r'[a-z0-9]+')


def normalize_phone(phone) -> Optional[str]:
    """Digits only, US country code dropped. None if fewer than 10 digits remain."""
    if not isinstance(phone, str):
        return None
    digits = re.sub(r'\D', '', phone)
    if len(digits) == 11 and digits.startswith('1'):
        digits = digits[1:]
    if len(digits) < 10:
        return None
    return digits


def name_tokens(name) -> Set[str]:
    if not isinstance(name, str):
        return set()
    return {t for t in _TOKEN_RE.findall(name.lower()) if t not in _LEGAL_SUFFIXES}


def jaccard_similarity(set_a: Set[str], set_b: Set[str]) -> float:
    """Jaccard index: |intersection| / |union|. Returns 0.0 for empty sets."""
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def name_similarity(name_a, name_b) -> float:
    """Token Jaccard after stripping punctuation and legal suffixes (LLC, Inc, ...)."""
    return jaccard_similarity(name_tokens(name_a), name_tokens(name_b))


@dataclass
class DuplicateGroup:
    reason: str  # 'phone' or 'name'
    key: str
    leads: List[dict] = field(default_factory=list)

    @property
    def extra_count(self) -> int:
        return max(0, len(self.leads) - 1)

    @property
    def lead_ids(self) -> List:
        return [lead.get('id') for lead in self.leads]

    def to_dict(self):
        return {
            'reason': self.reason,
            'key': self.key,
            'lead_ids': self.lead_ids,
            'company_names': [lead.get('company_name') for lead in self.leads],
        }


def _market_of(lead):
    city = lead.get('city') or ''
    state = lead.get('state') or ''
    return (' '.join(city.split()).casefold(), state.strip().upper())


def find_duplicate_groups(leads, name_threshold: float = 0.8) -> List[DuplicateGroup]:
    """Groups of two or more leads that look like the same business."""
    by_phone: Dict[str, DuplicateGroup] = {}
    no_phone: Dict[tuple, List[dict]] = {}

    for lead in leads:
        phone = normalize_phone(lead.get('phone'))
        if phone:
            group = by_phone.get(phone)
            if group is None:
                group = by_phone[phone] = DuplicateGroup(reason='phone', key=phone)
            group.leads.append(lead)
        else:
            no_phone.setdefault(_market_of(lead), []).append(lead)

    groups = [g for g in by_phone.values() if len(g.leads) > 1]

    for market, market_leads in no_phone.items():
        claimed = set()
        for i, lead in enumerate(market_leads):
            if i in claimed:
                continue
            group = DuplicateGroup(reason='name', key=f"{lead.get('company_name')} ({market[0]}, {market[1]})")
            group.leads.append(lead)
            for j in range(i + 1, len(market_leads)):
                if j in claimed:
                    continue
                other = market_leads[j]
                if name_similarity(lead.get('company_name'), other.get('company_name')) >= name_threshold:
                    group.leads.append(other)
                    claimed.add(j)
            if len(group.leads) > 1:
                groups.append(group)

    logger.info("Found %d duplicate groups", len(groups))
    return groups


def duplicate_summary(groups: List[DuplicateGroup]) -> dict:
    return {
        'groups': len(groups),
        'by_phone': sum(1 for g in groups if g.reason == 'phone'),
        'by_name': sum(1 for g in groups if g.reason == 'name'),
        'extra_records': sum(g.extra_count for g in groups),
    }
