"""Fit score calculation - How much do we know about this prospect?"""

from dataclasses import dataclass
from typing import Optional

from .config import UNKNOWN
from .models import Prospect


@dataclass
class FitWeights:
    """Points awarded per known field (max 100 total)."""

    email: int = 25
    linkedin: int = 20
    company_size: int = 10
    industry: int = 10
    website: int = 10
    rich_enrichments: int = 10
    known_company: int = 15


def calculate_fit_score(
    prospect: Prospect,
    usable_count: int = 0,
    weights: Optional[FitWeights] = None,
) -> int:
    """
    Calculate the fit score for a prospect.

    Fit score represents how contactable the prospect is with the data found
    so far. Higher score = more contact channels and company context.

    Args:
        prospect: The prospect to score
        usable_count: Number of completed, non-empty enrichments on the item
        weights: Point weights (uses defaults if not provided)

    Returns:
        Fit score from 0-100
    """
    weights = weights or FitWeights()
    score = 0

    if prospect.email:
        score += weights.email
    if prospect.linkedin_url:
        score += weights.linkedin
    if prospect.company_size:
        score += weights.company_size
    if prospect.industry:
        score += weights.industry
    if prospect.website:
        score += weights.website

    # More than three enrichments came back with data
    if usable_count > 3:
        score += weights.rich_enrichments

    if prospect.company and prospect.company != UNKNOWN:
        score += weights.known_company

    return min(score, 100)


def summarize(prospect: Prospect) -> str:
    """One-line summary, e.g. "Acme • Fintech • 250 employees"."""
    parts = []
    if prospect.company and prospect.company != UNKNOWN:
        parts.append(prospect.company)
    if prospect.industry:
        parts.append(prospect.industry)
    if prospect.company_size:
        parts.append(f"{prospect.company_size} employees")
    return " • ".join(parts)


def score_prospect(prospect: Prospect, usable_count: int = 0) -> Prospect:
    """Set fit_score and summary in place."""
    prospect.fit_score = calculate_fit_score(prospect, usable_count)
    prospect.summary = summarize(prospect)
    return prospect
