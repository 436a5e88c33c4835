"""Request validation, run before any remote call is made."""

from .config import CRITERION_TYPES, ENTITY_TYPES
from .models import SearchRequest


class SearchValidationError(ValueError):
    """The search request is malformed and was rejected locally."""
    pass


def validate_request(request: SearchRequest) -> SearchRequest:
    """
    Check a search request for problems the provider would reject.

    Args:
        request: The request to check

    Returns:
        The same request, for chaining

    Raises:
        SearchValidationError: If the request is missing a query, has a
            non-positive target count, or uses an unknown entity/criterion type
    """
    if not request.query or not request.query.strip():
        raise SearchValidationError("A search query is required")

    target = request.target_count
    if isinstance(target, bool) or not isinstance(target, int) or target <= 0:
        raise SearchValidationError(f"Target count must be a positive integer, got {target!r}")

    if request.entity_type not in ENTITY_TYPES:
        raise SearchValidationError(
            f"Entity type must be one of {sorted(ENTITY_TYPES)}, got {request.entity_type!r}"
        )

    for criterion in request.criteria:
        if not criterion.value or not criterion.value.strip():
            raise SearchValidationError(f"Criterion {criterion.label!r} has no value")
        if criterion.type not in CRITERION_TYPES:
            raise SearchValidationError(f"Unknown criterion type {criterion.type!r}")

    for enrichment in request.enrichments:
        if not enrichment.value or not enrichment.value.strip():
            raise SearchValidationError(f"Enrichment {enrichment.label!r} has no value")

    return request
