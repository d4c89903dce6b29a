"""
Business legitimacy classification — is this listing actually a provider of
the service it was scraped under?

The model's answer is reduced to (is_service_provider, confidence). A lead
whose classification fails is kept and reported, never silently dropped.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from leadintel import config
from leadintel import extensions
from leadintel.errors import ConfigurationError

logger = logging.getLogger('services.classifier')

PROMPT = """Analyze if this business is a legitimate service provider for {service_type}:

Business Name: "{name}"
Category: "{category}"
Website: "{website}"

Context:
- A service provider actively performs the service (builds pools, paints houses, installs turf)
- Retail stores, suppliers, manufacturers, property managers, sports facilities and
  businesses that merely have the feature are NOT service providers
- Stores that sell supplies are NOT service providers unless they also install

Respond with ONLY a JSON object:
{{"is_service_provider": true/false, "confidence": 0.0-1.0, "reason": "brief explanation"}}"""


@dataclass(frozen=True)
class Classification:
    is_service_provider: bool
    confidence: float
    reason: str = ''


@dataclass
class ClassificationResult:
    kept: List[dict] = field(default_factory=list)
    rejected: List[Tuple[dict, Classification]] = field(default_factory=list)
    errors: List[Tuple[dict, str]] = field(default_factory=list)

    def summary(self):
        return {'kept': len(self.kept), 'rejected': len(self.rejected), 'errors': len(self.errors)}


def _client():
    if extensions.openai_client is None:
        raise ConfigurationError("OPENAI_API_KEY is not set; business classification is unavailable")
    return extensions.openai_client


def classify_business(lead: dict, service_type: str, model: Optional[str] = None) -> Classification:
    """One JSON-mode chat completion per lead."""
    client = _client()
    prompt = PROMPT.format(
        service_type=service_type,
        name=lead.get('company_name') or '',
        category=lead.get('service_type') or '',
        website=lead.get('website') or '',
    )
    response = client.chat.completions.create(
        model=model or config.OPENAI_MODEL,
        messages=[{'role': 'user', 'content': prompt}],
        response_format={'type': 'json_object'},
        temperature=0,
    )
    data = json.loads(response.choices[0].message.content)

    confidence = float(data.get('confidence', 0.0))
    return Classification(
        is_service_provider=bool(data.get('is_service_provider', False)),
        confidence=min(max(confidence, 0.0), 1.0),
        reason=str(data.get('reason', '')),
    )


def filter_service_providers(leads, service_type: str, min_confidence: float = 0.7,
                             model: Optional[str] = None) -> ClassificationResult:
    """
    Split leads into kept / rejected.

    A lead is rejected only when the model says it is not a provider with at
    least `min_confidence`. Low-confidence answers keep the lead.
    """
    _client()
    result = ClassificationResult()

    for lead in leads:
        try:
            classification = classify_business(lead, service_type, model=model)
        except Exception as e:
            logger.warning("Classification failed for lead %s: %s", lead.get('id'), e)
            result.errors.append((lead, str(e)))
            result.kept.append(lead)
            continue

        if not classification.is_service_provider and classification.confidence >= min_confidence:
            result.rejected.append((lead, classification))
        else:
            result.kept.append(lead)

    logger.info(
        "Classified %d leads for %s: %d kept, %d rejected, %d errors",
        len(result.kept) + len(result.rejected), service_type,
        len(result.kept), len(result.rejected), len(result.errors),
    )
    return result
