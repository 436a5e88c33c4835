"""
Enrichment extraction: map loosely-structured provider results onto Prospect fields.

The provider does not guarantee a stable identifier-to-field mapping, so each
completed enrichment value goes through three tiers, first match wins:

1. the provider's enrichment identifier names the field
2. the enrichment description / label names the field
3. the value's shape suggests the field

Rule order matters for real-world output. Do not reorder.
"""

import logging
import re
from typing import Any, Iterable, Optional

from .config import (
    COMPANY_NAME_MAX_LENGTH,
    DOMAIN_PATTERN,
    EMPTY_RESULTS,
    FIELD_KEYWORDS,
    LOCATION_TOKENS,
    PHONE_PATTERN,
    PLACEHOLDER_NAME,
    TITLE_KEYWORDS,
    UNKNOWN,
)
from .models import (
    CONFIDENCE_FALLBACK,
    CONFIDENCE_IDENTIFIER,
    CONFIDENCE_LABEL,
    CONFIDENCE_PLACEHOLDER,
    CONFIDENCE_SHAPE,
    EnrichmentEntry,
    Prospect,
)
from .scoring import score_prospect

logger = logging.getLogger(__name__)

_PHONE_RE = re.compile(PHONE_PATTERN)
_DOMAIN_RE = re.compile(DOMAIN_PATTERN, re.IGNORECASE)


def normalize_enrichments(raw: Any) -> list[EnrichmentEntry]:
    """
    Normalize either enrichment payload shape into a flat list of entries.

    Array shape: [{"enrichmentId": ..., "description": ..., "status": ..., "result": [...]}]
    Map shape:   {"Email": {"status": ..., "result": [...]}, "Company": "Acme"}
    """
    if not raw:
        return []

    entries = []
    if isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict):
                continue
            entries.append(EnrichmentEntry(
                identifier=item.get("enrichmentId"),
                label=item.get("description") or item.get("title"),
                status=item.get("status", ""),
                result=item.get("result"),
            ))
    elif isinstance(raw, dict):
        for key, value in raw.items():
            if isinstance(value, dict):
                entries.append(EnrichmentEntry(
                    identifier=None,
                    label=value.get("description") or key,
                    status=value.get("status", ""),
                    result=value.get("result"),
                ))
            elif isinstance(value, str):
                # Bare values are already-completed results
                entries.append(EnrichmentEntry(
                    identifier=None, label=key, status="completed", result=value,
                ))
    return entries


def usable_value(entry: EnrichmentEntry) -> Optional[str]:
    """Return the representative value of a completed entry, or None."""
    if entry.status != "completed":
        return None

    result = entry.result
    if isinstance(result, list):
        result = result[0] if result else None
    if result is None:
        return None

    value = str(result).strip()
    if value.lower() in EMPTY_RESULTS:
        return None
    return value


def match_keyword(text: Optional[str]) -> Optional[str]:
    """Return the first field whose keyword appears in text."""
    if not text:
        return None
    text = text.lower()
    for field_name, keywords in FIELD_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return field_name
    return None


def name_from_linkedin(url: str) -> Optional[str]:
    """
    Derive a display name from a LinkedIn profile slug.

    Examples:
        "https://www.linkedin.com/in/jane-doe-4a7b21/" -> "Jane Doe"
        "https://linkedin.com/company/acme" -> None
    """
    if "/in/" not in url:
        return None
    slug = url.split("/in/", 1)[1].split("/")[0].split("?")[0]
    words = [w for w in slug.split("-") if w and not any(c.isdigit() for c in w)]
    if not words:
        return None
    return " ".join(w.capitalize() for w in words)


def _is_location(value: str) -> bool:
    lowered = value.lower()
    if lowered in LOCATION_TOKENS:
        return True
    parts = [p.strip() for p in lowered.split(",")]
    return any(p in LOCATION_TOKENS for p in parts)


def _is_job_title(value: str) -> bool:
    lowered = value.lower()
    return any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in TITLE_KEYWORDS)


def _as_url(value: str) -> str:
    return value if value.lower().startswith("http") else f"https://{value}"


def _apply_shape_rules(prospect: Prospect, value: str) -> Optional[str]:
    """Tier 3. Each rule only claims a field that is still empty."""
    lowered = value.lower()

    if "@" in value:
        if prospect.assign("email", value, CONFIDENCE_SHAPE):
            return "email"
        return None

    if "linkedin.com" in lowered:
        if not prospect.assign("linkedin_url", value, CONFIDENCE_SHAPE):
            return None
        if not prospect.full_name:
            prospect.assign("full_name", name_from_linkedin(value), CONFIDENCE_SHAPE)
        return "linkedin_url"

    if _PHONE_RE.match(value) and prospect.assign("phone", value, CONFIDENCE_SHAPE):
        return "phone"

    if _DOMAIN_RE.match(value):
        if prospect.assign("website", _as_url(value), CONFIDENCE_SHAPE):
            return "website"
        return None

    if (
        len(value) < COMPANY_NAME_MAX_LENGTH
        and "http" not in lowered
        and "united states" not in lowered
        and prospect.assign("company", value, CONFIDENCE_SHAPE)
    ):
        return "company"

    if _is_location(value) and prospect.assign("location", value, CONFIDENCE_SHAPE):
        return "location"

    if _is_job_title(value) and prospect.assign("job_title", value, CONFIDENCE_SHAPE):
        return "job_title"

    return None


def apply_entry(prospect: Prospect, entry: EnrichmentEntry) -> Optional[str]:
    """
    Apply one enrichment entry to a prospect.

    Returns:
        The field the value was routed to, or None if it was ignored
    """
    value = usable_value(entry)
    if value is None:
        return None

    for name, confidence in ((entry.identifier, CONFIDENCE_IDENTIFIER), (entry.label, CONFIDENCE_LABEL)):
        field_name = match_keyword(name)
        if field_name:
            if field_name == "website":
                value = _as_url(value)
            prospect.assign(field_name, value, confidence)
            return field_name

    return _apply_shape_rules(prospect, value)


def _apply_item_fallbacks(prospect: Prospect, item: dict) -> None:
    """Fill whatever the enrichments left empty from the item's own title and URL."""
    title = item.get("title")
    url = item.get("url")

    if title:
        # "Jane Doe - Marketing Director at Acme"
        name, _, role_company = title.partition(" - ")
        prospect.assign("full_name", name.strip(), CONFIDENCE_FALLBACK)
        if " at " in role_company:
            role, _, company = role_company.partition(" at ")
            prospect.assign("job_title", role.strip(), CONFIDENCE_FALLBACK)
            prospect.assign("company", company.strip(), CONFIDENCE_FALLBACK)

    if url:
        if "linkedin.com/in/" in url:
            prospect.assign("linkedin_url", url, CONFIDENCE_FALLBACK)
            prospect.assign("full_name", name_from_linkedin(url), CONFIDENCE_FALLBACK)
        prospect.assign("website", url, CONFIDENCE_FALLBACK)

    prospect.assign("full_name", PLACEHOLDER_NAME, CONFIDENCE_PLACEHOLDER)
    prospect.assign("job_title", UNKNOWN, CONFIDENCE_PLACEHOLDER)
    prospect.assign("company", UNKNOWN, CONFIDENCE_PLACEHOLDER)


def extract_prospect(item: dict) -> Prospect:
    """
    Convert one raw webset item into a Prospect.

    Never raises for a malformed item: the result is then a minimal prospect
    carrying only the id, a fallback name and the raw enrichments.

    Args:
        item: Raw item from the items listing

    Returns:
        Prospect with every field it could derive
    """
    item_id = str(item.get("id", ""))
    raw_enrichments = item.get("enrichments") or []

    try:
        prospect = Prospect(id=item_id, enrichments=raw_enrichments)
        entries = normalize_enrichments(raw_enrichments)

        for entry in entries:
            apply_entry(prospect, entry)

        _apply_item_fallbacks(prospect, item)
        score_prospect(prospect, usable_count=sum(1 for e in entries if usable_value(e)))
        return prospect

    except Exception as e:
        logger.warning("Failed to extract item %s: %s", item_id, e)
        fallback = Prospect(
            id=item_id,
            website=item.get("url"),
            enrichments=raw_enrichments,
        )
        fallback.assign("full_name", item.get("title"), CONFIDENCE_FALLBACK)
        fallback.assign("full_name", PLACEHOLDER_NAME, CONFIDENCE_PLACEHOLDER)
        fallback.assign("job_title", UNKNOWN, CONFIDENCE_PLACEHOLDER)
        fallback.assign("company", UNKNOWN, CONFIDENCE_PLACEHOLDER)
        return fallback


def extract_prospects(items: Iterable[dict]) -> list[Prospect]:
    """Extract a batch of items; one bad item never aborts the rest."""
    return [extract_prospect(item) for item in items if isinstance(item, dict)]
