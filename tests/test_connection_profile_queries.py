from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from app.services.connection_profile_cache import ConnectionProfileReadCache
from app.services.connection_profile_queries import ConnectionProfileQueryService
from app.services.connection_profiles import (
    ConnectionProfileService,
    ProfileNotFoundError,
    ProfileValidationError,
)


@pytest.fixture()
def cache() -> ConnectionProfileReadCache:
    return ConnectionProfileReadCache(maxsize=64, ttl=300)


@pytest.fixture()
def service(db_session: Session, clock, cache) -> ConnectionProfileService:
    return ConnectionProfileService(db_session, clock=clock, cache=cache)


@pytest.fixture()
def queries(db_session: Session, clock, cache) -> ConnectionProfileQueryService:
    return ConnectionProfileQueryService(db_session, clock=clock, cache=cache)


def _seed(service: ConnectionProfileService, profile_payload) -> dict:
    profiles = {
        "orders": service.create(profile_payload()),
        "billing": service.create(
            profile_payload(
                profile_name="Billing API",
                profile_code="BILLING_API",
                connection_type="api",
                environment="staging",
                server_id=7,
                batch_size=100,
                parallel_threads=2,
                data_classification="restricted",
                contains_pii=True,
                gdpr_applicable=True,
                health_check_enabled=True,
            )
        ),
        "events": service.create(
            profile_payload(
                profile_name="Events Stream",
                profile_code="EVENTS",
                connection_type="kafka",
                load_strategy="append",
                environment="production",
                server_id=7,
                batch_size=5000,
                parallel_threads=8,
                data_classification="internal",
                contains_pii=True,
                valid_to="2024-06-01T00:00:00Z",
            )
        ),
        "archive": service.create(
            profile_payload(
                profile_name="Orders Archive",
                profile_code="ORD_ARCHIVE",
                connection_type="database",
                environment="development",
                data_classification="confidential",
            )
        ),
    }
    service.deactivate(profiles["archive"].id)
    return profiles


def test_list_profiles_paginates(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    first = queries.list_profiles(limit=2, offset=0)
    second = queries.list_profiles(limit=2, offset=2)

    assert first.count == 4
    assert first.pagination.total == 4
    assert first.pagination.has_more is True
    assert [profile.profile_code for profile in first.data] == ["ORD_WH", "BILLING_API"]
    assert second.pagination.has_more is False
    assert [profile.profile_code for profile in second.data] == ["EVENTS", "ORD_ARCHIVE"]


def test_list_profiles_clamps_page_size(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    response = queries.list_profiles(limit=10_000)

    assert response.pagination.limit == 500
    assert len(response.data) == 4


def test_list_profiles_reports_source(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    assert queries.list_profiles().source == "database"
    assert queries.list_profiles().source == "cache"
    assert queries.list_profiles(skip_cache=True).source == "database-forced"


def test_cached_listing_is_refreshed_after_write(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)
    assert queries.list_profiles().count == 4

    service.create(profile_payload(profile_name="Ledger", profile_code="LEDGER"))

    refreshed = queries.list_profiles()
    assert refreshed.source == "database"
    assert refreshed.count == 5


def test_search_matches_name_substring_case_insensitively(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    response = queries.search({"profile_name": "orders"})

    assert {profile.profile_code for profile in response.data} == {"ORD_WH", "ORD_ARCHIVE"}


def test_search_treats_wildcards_literally(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    assert queries.search({"profile_code": "%"}).count == 0
    assert queries.search({"profile_code": "ORD_"}).count == 2


def test_search_combines_filters(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    response = queries.search({"server_id": 7, "contains_pii": True, "min_batch_size": 1000})

    assert [profile.profile_code for profile in response.data] == ["EVENTS"]


def test_search_by_batch_and_thread_ranges(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    response = queries.search(
        {"min_batch_size": 100, "max_batch_size": 500, "max_parallel_threads": 4}
    )

    assert {profile.profile_code for profile in response.data} == {"ORD_WH", "BILLING_API", "ORD_ARCHIVE"}


def test_search_with_no_match_returns_empty_page(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    response = queries.search({"profile_name": "does-not-exist"})

    assert response.data == []
    assert response.count == 0
    assert response.pagination.has_more is False


def test_search_rejects_unknown_enum_value(queries) -> None:
    with pytest.raises(ProfileValidationError, match="environment"):
        queries.search({"environment": "qa"})


def test_filter_shortcuts(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    assert {p.profile_code for p in queries.by_connection_type("database").data} == {"ORD_WH", "ORD_ARCHIVE"}
    assert {p.profile_code for p in queries.by_environment("production").data} == {"ORD_WH", "EVENTS"}
    assert {p.profile_code for p in queries.by_server(7).data} == {"BILLING_API", "EVENTS"}
    assert [p.profile_code for p in queries.by_classification("restricted").data] == ["BILLING_API"]


def test_lookup_by_name_and_code(service, queries, profile_payload) -> None:
    profiles = _seed(service, profile_payload)

    assert queries.by_name("Billing API").id == profiles["billing"].id
    assert queries.by_code("EVENTS").id == profiles["events"].id
    with pytest.raises(ProfileNotFoundError):
        queries.by_code("events")
    with pytest.raises(ProfileNotFoundError):
        queries.by_name("Unknown")


def test_check_validity(service, queries, profile_payload) -> None:
    profiles = _seed(service, profile_payload)

    assert queries.check_validity(profiles["orders"].id).is_valid is True
    assert queries.check_validity(profiles["events"].id).is_valid is False
    assert queries.check_validity(profiles["archive"].id).is_valid is False
    with pytest.raises(ProfileNotFoundError):
        queries.check_validity(uuid4())


def test_check_validity_reflects_clock_even_when_cached(service, queries, clock, profile_payload) -> None:
    profile = service.create(profile_payload(valid_to="2024-12-31T00:00:00Z"))

    assert queries.check_validity(profile.id).is_valid is True
    clock.advance_to(datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert queries.check_validity(profile.id).is_valid is False


def test_stats_by_connection_type(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    stats = queries.stats_by_connection_type()

    assert [(item.key, item.count) for item in stats] == [("database", 2), ("api", 1), ("kafka", 1)]


def test_stats_by_environment(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    stats = queries.stats_by_environment()

    assert [(item.key, item.count) for item in stats] == [
        ("production", 2),
        ("development", 1),
        ("staging", 1),
    ]


def test_stats_on_empty_store(queries) -> None:
    assert queries.stats_by_connection_type() == []
    governance = queries.data_governance_stats()
    assert governance.classification_counts == {}
    assert governance.total == 0


def test_data_governance_stats(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    stats = queries.data_governance_stats()

    assert stats.classification_counts == {"confidential": 2, "internal": 1, "restricted": 1}
    assert stats.pii_count == 2
    assert stats.gdpr_count == 1
    assert stats.total == 4


def test_most_used_orders_by_last_use(service, queries, clock, profile_payload) -> None:
    profiles = _seed(service, profile_payload)
    clock.advance_to(datetime(2024, 7, 2, tzinfo=timezone.utc))
    service.mark_used(profiles["events"].id)
    clock.advance_to(datetime(2024, 7, 3, tzinfo=timezone.utc))
    service.mark_used(profiles["billing"].id)

    ranked = queries.most_used(limit=3)

    assert [profile.profile_code for profile in ranked] == ["BILLING_API", "EVENTS", "ORD_WH"]


def test_expired_lists_profiles_past_their_window(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    assert [profile.profile_code for profile in queries.expired()] == ["EVENTS"]


def test_active_pii_and_health_check_lists(service, queries, profile_payload) -> None:
    _seed(service, profile_payload)

    assert {p.profile_code for p in queries.active()} == {"ORD_WH", "BILLING_API", "EVENTS"}
    assert {p.profile_code for p in queries.with_pii()} == {"BILLING_API", "EVENTS"}
    assert [p.profile_code for p in queries.health_check_enabled()] == ["BILLING_API"]


def test_expired_reflects_clock_between_cached_calls(service, queries, clock, profile_payload) -> None:
    profile = service.create(profile_payload(valid_to="2024-12-31T00:00:00Z"))
    assert queries.expired() == []

    clock.advance_to(datetime(2025, 1, 1, tzinfo=timezone.utc))

    assert [p.id for p in queries.expired()] == [profile.id]
    assert queries.check_validity(profile.id).is_valid is False
