"""
Unit tests for conditional request validation.
"""

import hashlib
from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import CollectorRegistry
from pydantic import BaseModel

from shared.errors import EntityTagError
from shared.metrics import MetricsCollector
from service_portfolio.app.freshness import (
    ConditionalContext,
    ConditionalRequestValidator,
    format_http_date,
    parse_http_date,
)


UPDATED_AT = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class PortfolioSummary(BaseModel):
    portfolio_id: str
    title: str


class TestHttpDates:
    """Test cases for HTTP date helpers."""

    def test_format(self):
        assert format_http_date(UPDATED_AT) == "Wed, 15 Jan 2025 10:00:00 GMT"

    def test_format_drops_microseconds_and_assumes_utc(self):
        naive = datetime(2025, 1, 15, 10, 0, 0, 987654)
        assert format_http_date(naive) == "Wed, 15 Jan 2025 10:00:00 GMT"

    def test_parse(self):
        assert parse_http_date("Wed, 15 Jan 2025 10:00:00 GMT") == UPDATED_AT

    @pytest.mark.parametrize("value", [
        None,
        "",
        "yesterday",
        "Wed, 99 Foo 2025 xx GMT",
        "Mon, 01 Jan 2024 99999999999999999999:00:00 GMT",
        "Mon, 01 Jan 99999999999999999999 00:00:00 GMT",
        "Fri, 31 Dec 9999 23:00:00 -0500",
    ])
    def test_parse_malformed_is_none(self, value):
        assert parse_http_date(value) is None


class TestEntityTag:
    """Test cases for compute_entity_tag."""

    @pytest.fixture
    def validator(self):
        return ConditionalRequestValidator()

    def test_tag_is_quoted_sha256(self, validator):
        tag = validator.compute_entity_tag({"a": 1})

        digest = hashlib.sha256(b'{"a":1}').hexdigest()
        assert tag == f'"{digest}"'

    def test_deterministic(self, validator):
        payload = {"portfolio_id": "demo", "sections": ["hero", "about"]}
        assert validator.compute_entity_tag(payload) == validator.compute_entity_tag(dict(payload))

    def test_content_sensitive(self, validator):
        original = {"portfolio_id": "demo", "title": "Jane"}
        changed = {"portfolio_id": "demo", "title": "Jane D"}
        assert validator.compute_entity_tag(original) != validator.compute_entity_tag(changed)

    def test_bytes_and_str(self, validator):
        assert validator.compute_entity_tag(b"abc") == f'"{hashlib.sha256(b"abc").hexdigest()}"'
        assert validator.compute_entity_tag("abc") == validator.compute_entity_tag(b"abc")

    def test_pydantic_model(self, validator):
        model = PortfolioSummary(portfolio_id="demo", title="Jane")
        expected = hashlib.sha256(model.model_dump_json().encode("utf-8")).hexdigest()

        assert validator.compute_entity_tag(model) == f'"{expected}"'

    def test_unserializable_payload_raises(self, validator):
        with pytest.raises(EntityTagError):
            validator.compute_entity_tag({"when": datetime.now()})


class TestIsFresh:
    """Test cases for is_fresh."""

    @pytest.fixture
    def validator(self):
        return ConditionalRequestValidator()

    @pytest.fixture
    def tag(self, validator):
        return validator.compute_entity_tag({"portfolio_id": "demo"})

    def test_matching_if_none_match(self, validator, tag):
        assert validator.is_fresh({"If-None-Match": tag}, entity_tag=tag) is True

    def test_tag_differing_by_one_character(self, validator, tag):
        other = tag[:-2] + ("0" if tag[-2] != "0" else "1") + '"'
        assert validator.is_fresh({"If-None-Match": other}, entity_tag=tag) is False

    def test_header_lookup_is_case_insensitive(self, validator, tag):
        assert validator.is_fresh({"if-none-match": tag}, entity_tag=tag) is True

    def test_no_comparators_is_not_fresh(self, validator, tag):
        assert validator.is_fresh({"If-None-Match": tag}) is False

    def test_no_request_validators_is_not_fresh(self, validator, tag):
        assert validator.is_fresh({}, entity_tag=tag, last_modified=UPDATED_AT) is False

    def test_if_modified_since_equal(self, validator):
        headers = {"If-Modified-Since": "Wed, 15 Jan 2025 10:00:00 GMT"}
        assert validator.is_fresh(headers, last_modified=UPDATED_AT) is True

    def test_if_modified_since_ignores_sub_second_precision(self, validator):
        headers = {"If-Modified-Since": "Wed, 15 Jan 2025 10:00:00 GMT"}
        assert validator.is_fresh(headers, last_modified=UPDATED_AT + timedelta(microseconds=500000)) is True

    def test_if_modified_since_older(self, validator):
        headers = {"If-Modified-Since": format_http_date(UPDATED_AT - timedelta(seconds=1))}
        assert validator.is_fresh(headers, last_modified=UPDATED_AT) is False

    def test_malformed_date_is_absent(self, validator):
        headers = {"If-Modified-Since": "not a date"}
        assert validator.is_fresh(headers, last_modified=UPDATED_AT) is False

    def test_out_of_range_date_is_absent(self, validator):
        headers = {"If-Modified-Since": "Mon, 01 Jan 2024 99999999999999999999:00:00 GMT"}
        assert validator.is_fresh(headers, last_modified=UPDATED_AT) is False

    def test_either_validator_is_enough(self, validator, tag):
        headers = {
            "If-None-Match": '"stale"',
            "If-Modified-Since": "Wed, 15 Jan 2025 10:00:00 GMT",
        }
        assert validator.is_fresh(headers, entity_tag=tag, last_modified=UPDATED_AT) is True


class TestEvaluate:
    """Test cases for the 304 decision."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("portfolio-test", registry=CollectorRegistry())

    @pytest.fixture
    def validator(self, metrics):
        return ConditionalRequestValidator(metrics=metrics)

    def test_not_modified_response(self, validator):
        response = validator.not_modified_response({"ETag": '"x"'})

        assert response.status_code == 304
        assert response.body == b""
        assert response.headers["ETag"] == '"x"'

    def test_fresh_request_gets_304_with_validators(self, validator, metrics):
        context = validator.context_for({"portfolio_id": "demo"}, UPDATED_AT)

        response = validator.evaluate(
            {"If-None-Match": context.entity_tag},
            context,
            endpoint_class="portfolios",
            headers={"Cache-Control": "private, max-age=60"},
        )

        assert response.status_code == 304
        assert response.headers["ETag"] == context.entity_tag
        assert response.headers["Last-Modified"] == "Wed, 15 Jan 2025 10:00:00 GMT"
        assert response.headers["Cache-Control"] == "private, max-age=60"
        assert metrics.registry.get_sample_value(
            "conditional_requests_total", {"endpoint_class": "portfolios", "result": "not_modified"}
        ) == 1.0

    def test_stale_request_proceeds(self, validator, metrics):
        context = ConditionalContext(entity_tag='"current"')

        assert validator.evaluate({"If-None-Match": '"previous"'}, context, endpoint_class="portfolios") is None
        assert metrics.registry.get_sample_value(
            "conditional_requests_total", {"endpoint_class": "portfolios", "result": "full"}
        ) == 1.0

    def test_validator_headers(self):
        context = ConditionalContext(entity_tag='"x"', last_modified=UPDATED_AT)

        assert context.validator_headers() == {
            "ETag": '"x"',
            "Last-Modified": "Wed, 15 Jan 2025 10:00:00 GMT",
        }
        assert ConditionalContext().validator_headers() == {}
