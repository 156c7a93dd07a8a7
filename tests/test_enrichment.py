"""Tests for collection-specific enrichment."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from streamindex import enrichment
from streamindex.enrichment import enrich, parse_timestamp

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestListings:

    def test_score_for_rated_listing(self):
        doc = {
            "rating": 4.5,
            "reviewCount": 20,
            "createdAt": (NOW - timedelta(days=30)).isoformat(),
        }
        result = enrich(doc, "listings", now=NOW)
        expected = (4.5 * math.log(21)) / math.log(31)
        assert result["score"] == pytest.approx(expected, abs=0.01)
        assert result["score"] == pytest.approx(3.73, abs=0.01)

    def test_score_defaults_to_zero_without_rating(self):
        result = enrich({"createdAt": NOW.isoformat()}, "listings", now=NOW)
        assert result["score"] == 0

    def test_missing_created_at_uses_a_year(self):
        result = enrich({"rating": 5, "reviewCount": 9}, "listings", now=NOW)
        assert result["score"] == pytest.approx((5 * math.log(10)) / math.log(366))

    def test_brand_new_listing_age_is_at_least_one_day(self):
        result = enrich(
            {"rating": 4, "reviewCount": 3, "createdAt": NOW.isoformat()}, "listings", now=NOW
        )
        assert result["score"] == pytest.approx((4 * math.log(4)) / math.log(2))

    def test_zulu_timestamp(self):
        doc = {"rating": 4.5, "reviewCount": 20, "createdAt": "2024-05-16T12:00:00.000Z"}
        result = enrich(doc, "listings", now=NOW)
        assert result["score"] == pytest.approx(3.73, abs=0.01)

    def test_search_tags(self):
        doc = {"title": "Sunset Surf Lesson for Kids in the Bay", "category": "Surf"}
        result = enrich(doc, "listings", now=NOW)
        assert result["searchTags"] == ["sunset", "surf", "lesson", "for", "kids", "the", "bay"]

    def test_bad_created_at_drops_only_the_score(self):
        doc = {"rating": 4.5, "reviewCount": 20, "createdAt": "not-a-date", "title": "Big Wave"}
        result = enrich(doc, "listings", now=NOW)
        assert "score" not in result
        assert result["searchTags"] == ["big", "wave"]
        assert result["lastSyncedAt"] == NOW.isoformat()


class TestEvents:

    def test_time_buckets(self):
        # 2024-06-16 is a Sunday
        result = enrich({"startDateTime": "2024-06-16T14:30:00Z"}, "events", now=NOW)
        assert result["dayOfWeek"] == 0
        assert result["monthOfYear"] == 6
        assert result["hourOfDay"] == 14
        assert result["timeSlot"] == "14:00-15:00"

    def test_no_start_time_adds_nothing(self):
        result = enrich({"status": "confirmed"}, "events", now=NOW)
        assert set(result) == {"status", "lastSyncedAt"}

    def test_unparseable_start_time_is_skipped(self):
        result = enrich({"startDateTime": "soon"}, "events", now=NOW)
        assert "dayOfWeek" not in result
        assert "timeSlot" not in result


class TestActors:

    def test_provider_with_bookings_is_active(self):
        result = enrich({"userType": "provider", "totalBookings": 3}, "actors", now=NOW)
        assert result["isActiveProvider"] is True

    def test_provider_without_bookings_is_inactive(self):
        result = enrich({"userType": "provider", "totalBookings": 0}, "actors", now=NOW)
        assert result["isActiveProvider"] is False

    def test_customer_has_no_flag(self):
        result = enrich({"userType": "customer", "totalBookings": 7}, "actors", now=NOW)
        assert "isActiveProvider" not in result


class TestCommon:

    def test_input_is_not_mutated(self):
        doc = {"rating": 4.0, "reviewCount": 2}
        enrich(doc, "listings", now=NOW)
        assert doc == {"rating": 4.0, "reviewCount": 2}

    def test_unregistered_collection_only_gets_timestamp(self):
        result = enrich({"a": 1}, "messages", now=NOW)
        assert result == {"a": 1, "lastSyncedAt": NOW.isoformat()}

    def test_last_synced_at_overwrites_existing_value(self):
        result = enrich({"lastSyncedAt": "1999-01-01T00:00:00Z"}, "listings", now=NOW)
        assert result["lastSyncedAt"] == NOW.isoformat()

    def test_registered_enricher_runs(self, monkeypatch):
        monkeypatch.setattr(enrichment, "ENRICHERS", {})
        enrichment.register_enricher("messages", "length", lambda doc, now: len(doc["content"]))
        assert enrich({"content": "hello"}, "messages", now=NOW)["length"] == 5

    def test_parse_epoch_milliseconds(self):
        assert parse_timestamp(1718452800000) == datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
