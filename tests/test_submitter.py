"""Tests for webset payload construction and submission."""

import dataclasses

import pytest

from prospector.config import Settings
from prospector.models import Criterion, EnrichmentField, SearchRequest
from prospector.websets import (
    SearchSubmitter,
    TransientProviderError,
    WebsetCache,
    build_webset_params,
    idempotency_key,
    prioritize_criteria,
)
from prospector.websets.submitter import build_enrichments, build_search_config, clamp_count, preview_request

pytest_plugins = ('pytest_asyncio',)


class TestPrioritizeCriteria:
    """Test criteria ranking and the five-criteria cap."""

    def test_sorted_by_priority(self):
        criteria = [
            Criterion("Uses Kubernetes", "kubernetes", "technology"),
            Criterion("Based in London", "london", "location"),
            Criterion("Head of Platform", "head of platform", "job_title"),
        ]
        result = prioritize_criteria(criteria)

        assert [c["description"] for c in result] == [
            "Head of Platform", "Based in London", "Uses Kubernetes",
        ]
        assert [c["successRate"] for c in result] == [85, 80, 65]

    def test_capped_at_five(self):
        criteria = [
            Criterion("other 1", "o1", "other"),
            Criterion("activity", "a", "activity"),
            Criterion("tech", "t", "technology"),
            Criterion("location", "l", "location"),
            Criterion("industry", "i", "industry"),
            Criterion("company type", "ct", "company_type"),
            Criterion("title", "jt", "job_title"),
        ]
        result = prioritize_criteria(criteria, limit=5)

        assert len(result) == 5
        assert [c["description"] for c in result] == [
            "title", "company type", "industry", "location", "tech",
        ]

    def test_equal_priorities_keep_input_order(self):
        criteria = [
            Criterion("first", "a", "industry"),
            Criterion("second", "b", "industry"),
            Criterion("third", "c", "industry"),
        ]
        assert [c["description"] for c in prioritize_criteria(criteria)] == ["first", "second", "third"]

    def test_unknown_type_uses_default_priority(self):
        criteria = [
            Criterion("other", "o", "other"),
            Criterion("mystery", "m", "mystery"),
            Criterion("activity", "a", "activity"),
        ]
        result = prioritize_criteria(criteria)

        # activity 60 > default 55 > other 50
        assert [c["description"] for c in result] == ["activity", "mystery", "other"]
        assert result[1]["successRate"] == 65

    def test_empty(self):
        assert prioritize_criteria([]) == []


class TestSearchConfig:
    """Test the search block of the payload."""

    def test_count_clamped(self):
        assert clamp_count(0) == 1
        assert clamp_count(5000) == 1000
        assert clamp_count(25) == 25

    def test_search_block(self, cto_request):
        config = build_search_config(cto_request, Settings(exa_api_key="k"))

        assert config["query"] == cto_request.query
        assert config["count"] == 3
        assert config["entity"] == {"type": "person"}
        assert config["behavior"] == "override"
        assert len(config["criteria"]) == 2

    def test_large_target_clamped(self, cto_request):
        request = dataclasses.replace(cto_request, target_count=10_000)
        assert build_search_config(request)["count"] == 1000

    def test_preview_request(self, cto_request):
        preview = preview_request(cto_request)

        assert preview.target_count == 1
        assert preview.criteria == cto_request.criteria
        assert build_search_config(preview)["count"] == 1


class TestEnrichments:
    """Test enrichment payload construction."""

    def test_labels_mapped(self):
        specs = build_enrichments([EnrichmentField("Email", "email"), EnrichmentField("LinkedIn", "linkedin")])

        assert specs[0]["description"] == "Extract the person's email address"
        assert specs[0]["format"] == "text"
        assert specs[0]["instructions"] == (
            "Look for and extract the email address from the profile or page content."
        )
        assert specs[1]["description"] == "Extract the person's LinkedIn profile URL"

    def test_unmapped_value_used_as_is(self):
        specs = build_enrichments([EnrichmentField("Funding stage", "funding stage")])
        assert specs[0]["description"] == "Extract the person's funding stage"

    def test_duplicates_removed(self):
        specs = build_enrichments([
            EnrichmentField("Email", "email"),
            EnrichmentField("E-mail address", "email"),
            EnrichmentField("Phone", "phone"),
        ])
        assert [s["description"] for s in specs] == [
            "Extract the person's email address",
            "Extract the person's phone number",
        ]

    def test_capped_at_ten(self):
        fields = [EnrichmentField(f"Field {n}", f"field {n}") for n in range(15)]
        assert len(build_enrichments(fields, limit=10)) == 10


class TestIdempotencyKey:
    """Test the external id used for webset creation."""

    def test_stable(self, cto_request):
        assert idempotency_key(cto_request) == idempotency_key(dataclasses.replace(cto_request))

    def test_prefixed(self, cto_request):
        assert idempotency_key(cto_request).startswith("prospector:webset:")

    def test_query_included(self, cto_request):
        other = dataclasses.replace(cto_request, query="Something else entirely")
        assert idempotency_key(other) != idempotency_key(cto_request)

    def test_query_normalized(self, cto_request):
        shouting = dataclasses.replace(cto_request, query="  " + cto_request.query.upper() + " ")
        assert idempotency_key(shouting) == idempotency_key(cto_request)

    def test_target_included(self, cto_request):
        other = dataclasses.replace(cto_request, target_count=50)
        assert idempotency_key(other) != idempotency_key(cto_request)

    def test_in_payload(self, cto_request):
        params = build_webset_params(cto_request)
        assert params["externalId"] == idempotency_key(cto_request)
        assert set(params) == {"search", "enrichments", "externalId"}


class TestSearchSubmitter:
    """Test create-or-reuse."""

    @pytest.mark.asyncio
    async def test_submit_creates_and_caches(self, fake_client, cto_request):
        cache = WebsetCache()
        submitter = SearchSubmitter(fake_client, cache)

        webset_id = await submitter.submit(cto_request)

        assert webset_id == "ws_1"
        assert fake_client.created[0]["externalId"] == idempotency_key(cto_request)
        assert cache.get(cto_request).webset_id == "ws_1"

    @pytest.mark.asyncio
    async def test_repeat_submission_is_idempotent(self, fake_client, cto_request):
        """A retried submission collapses onto the same webset."""
        submitter = SearchSubmitter(fake_client, cache=None)

        first = await submitter.submit(cto_request)
        second = await submitter.submit(cto_request)

        assert first == second
        assert len(fake_client.created) == 1

    @pytest.mark.asyncio
    async def test_reuse_across_phrasings(self, fake_client, cto_request):
        submitter = SearchSubmitter(fake_client, WebsetCache())

        first = await submitter.create_or_reuse(cto_request)
        second = await submitter.create_or_reuse(
            dataclasses.replace(cto_request, query="Berlin CTOs in fintech")
        )

        assert first.reused is False
        assert first.external_id == idempotency_key(cto_request)
        assert second.reused is True
        assert second.webset_id == first.webset_id
        assert len(fake_client.created) == 1

    @pytest.mark.asyncio
    async def test_different_filters_create_new_webset(self, fake_client, cto_request):
        submitter = SearchSubmitter(fake_client, WebsetCache())

        first = await submitter.create_or_reuse(cto_request)
        second = await submitter.create_or_reuse(
            dataclasses.replace(cto_request, criteria=(Criterion("Munich", "Munich", "location"),))
        )

        assert second.reused is False
        assert second.webset_id != first.webset_id

    @pytest.mark.asyncio
    async def test_reuse_check_failure_creates_new_webset(self, fake_client, cto_request):
        cache = WebsetCache()
        await cache.cache_job(cto_request, "ws_old")
        fake_client.add_webset("ws_old", status="running")
        fake_client.get_errors.append(TransientProviderError("timeout"))

        result = await SearchSubmitter(fake_client, cache).create_or_reuse(cto_request)

        assert result.reused is False
        assert result.webset_id != "ws_old"
        assert cache.get(cto_request).webset_id == result.webset_id

    @pytest.mark.asyncio
    async def test_without_cache(self, fake_client):
        request = SearchRequest(query="Founders of climate startups", target_count=5)
        result = await SearchSubmitter(fake_client).create_or_reuse(request)

        assert result.reused is False
        assert fake_client.created[0]["search"]["count"] == 5
        assert fake_client.created[0]["search"]["criteria"] == []
