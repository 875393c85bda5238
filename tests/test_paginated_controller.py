"""Tests for the paginated fetch controller."""

import asyncio
import logging

import pytest

from ims_client.api.errors import ApiError, AuthenticationError
from ims_client.api.resources import get_resource
from ims_client.config.loader import load_config
from ims_client.listing.controller import FetchState, PaginatedFetchController
from ims_client.notify import Notifier
from ims_client.session import AuthSession

from conftest import FakeClient, make_page


def _echo_status(path, params):
    return make_page([{"id": 1, "status": params.get("status")}], page=params["page"], per_page=params["limit"])


def _controller(client, session, **kwargs):
    kwargs.setdefault("search_delay_ms", 0)
    kwargs.setdefault("notifier", Notifier())
    return PaginatedFetchController(client, session, kwargs.pop("path", "/borrowings"), **kwargs)


def test_initial_fetch_composes_default_params(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session, default_filters={"status": "All"})
        controller.start()
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert fake_client.calls == [
        (
            "/borrowings",
            {
                "page": 1,
                "limit": 10,
                "search": "",
                "status": "All",
                "sortBy": "updatedAt",
                "sortOrder": "desc",
            },
        )
    ]
    assert controller.state is FetchState.LOADED
    assert controller.is_loading is False


def test_filter_then_search_composes_both_on_page_one(session):
    client = FakeClient(_echo_status)

    async def scenario():
        controller = _controller(client, session, default_filters={"status": "All"})
        controller.start()
        controller.set_page(3)
        await controller.settled()

        controller.set_filter("status", "BORROWED")
        controller.set_search("john")
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())
    params = client.params()

    assert params["search"] == "john"
    assert params["status"] == "BORROWED"
    assert params["page"] == 1
    assert controller.request_params() == params
    assert controller.debounced_search_term == "john"


@pytest.mark.parametrize(
    "change",
    [
        lambda c: c.set_filter("status", "RETURNED"),
        lambda c: c.set_sort("borrowDate"),
        lambda c: c.set_search("acme"),
        lambda c: c.set_exclude_ids([7]),
    ],
    ids=["filter", "sort", "search", "exclude_ids"],
)
def test_query_changes_reset_to_first_page(fake_client, session, change):
    async def scenario():
        controller = _controller(fake_client, session)
        controller.set_page(4)
        await controller.settled()
        assert fake_client.params()["page"] == 4

        change(controller)
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert fake_client.params()["page"] == 1
    assert controller.query.page == 1


def test_search_waits_for_debounce_before_fetching(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session, search_delay_ms=50)
        controller.set_search("j")
        controller.set_search("jo")
        controller.set_search("john")
        await asyncio.sleep(0)
        calls_while_typing = len(fake_client.calls)
        typed = controller.search_term
        committed_while_typing = controller.debounced_search_term
        await controller.settled()
        return calls_while_typing, typed, committed_while_typing

    calls_while_typing, typed, committed_while_typing = asyncio.run(scenario())

    assert calls_while_typing == 0
    assert typed == "john"
    assert committed_while_typing == ""
    assert [params["search"] for _, params in fake_client.calls] == ["john"]


def test_refresh_twice_issues_identical_requests(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session, default_filters={"status": "All"})
        controller.set_filter("status", "BORROWED")
        await controller.settled()
        controller.refresh()
        await controller.settled()
        controller.refresh()
        await controller.settled()

    asyncio.run(scenario())

    assert fake_client.calls[-1] == fake_client.calls[-2]


def test_sort_same_key_toggles_and_new_key_starts_ascending(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session)
        controller.set_sort("name")
        first = (controller.sort_by, controller.sort_order)
        controller.set_sort("name")
        second = (controller.sort_by, controller.sort_order)
        controller.set_sort("name")
        third = (controller.sort_by, controller.sort_order)
        await controller.settled()
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first == ("name", "asc")
    assert second == ("name", "desc")
    assert third == ("name", "asc")
    assert fake_client.params()["sortOrder"] == "asc"


def test_toggling_default_sort_twice_restores_order(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session)
        original = controller.sort_order
        controller.set_sort(controller.sort_by)
        controller.set_sort(controller.sort_by)
        await controller.settled()
        return original, controller.sort_order

    original, final = asyncio.run(scenario())

    assert original == final == "desc"


def test_page_size_change_resets_pagination_optimistically(session):
    client = FakeClient(lambda path, params: make_page([{"id": 1}], page=params["page"], per_page=params["limit"], total=95))

    async def scenario():
        controller = _controller(client, session)
        controller.set_page(3)
        await controller.settled()
        loaded = controller.pagination

        gate = client.gates[len(client.calls) + 1] = asyncio.Event()
        controller.set_page_size(20)
        optimistic = controller.pagination
        loading = controller.is_loading
        gate.set()
        await controller.settled()
        return loaded, optimistic, loading, controller.pagination

    loaded, optimistic, loading, corrected = asyncio.run(scenario())

    assert loaded.current_page == 3
    assert optimistic.current_page == 1
    assert optimistic.total_pages == 1
    assert optimistic.total_items == 0
    assert optimistic.items_per_page == 20
    assert loading is True
    assert client.params()["limit"] == 20
    assert client.params()["page"] == 1
    assert corrected.total_items == 95
    assert corrected.total_pages == 5


def test_page_size_outside_allowed_set_rejected(fake_client, session):
    controller = _controller(fake_client, session)
    with pytest.raises(ValueError, match="not in allowed sizes"):
        controller.set_page_size(15)


def test_page_below_one_rejected(fake_client, session):
    controller = _controller(fake_client, session)
    with pytest.raises(ValueError, match="Page must be >= 1"):
        controller.set_page(0)


def test_default_page_size_must_be_allowed(fake_client, session):
    with pytest.raises(ValueError, match="not in allowed sizes"):
        _controller(fake_client, session, default_page_size=7)


def test_empty_result_reports_one_page(session):
    client = FakeClient(lambda path, params: make_page([], total=0))

    async def scenario():
        controller = _controller(client, session)
        controller.start()
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert controller.items == []
    assert controller.pagination.total_items == 0
    assert controller.pagination.total_pages == 1
    assert controller.state is FetchState.LOADED


def test_stale_response_does_not_overwrite_newer_filter(session):
    """Two quick filter changes: the slow first answer must be discarded."""
    client = FakeClient(_echo_status)

    async def scenario():
        controller = _controller(client, session, default_filters={"status": "All"})
        controller.start()
        await controller.settled()

        slow = asyncio.Event()
        client.gates[2] = slow
        first = controller.set_filter("status", "BORROWED")
        second = controller.set_filter("status", "RETURNED")
        await second
        after_second = (list(controller.items), controller.is_loading)

        slow.set()
        await first
        return controller, after_second

    controller, (items_after_second, loading_after_second) = asyncio.run(scenario())

    assert [params["status"] for _, params in client.calls] == ["All", "BORROWED", "RETURNED"]
    assert items_after_second == [{"id": 1, "status": "RETURNED"}]
    assert loading_after_second is False
    assert controller.items == [{"id": 1, "status": "RETURNED"}]
    assert controller.filters["status"] == "RETURNED"
    assert controller.state is FetchState.LOADED


def test_failure_keeps_previous_data_and_notifies_once(session):
    behaviour = {"fail": False}

    def handler(path, params):
        if behaviour["fail"]:
            return ApiError("Database unavailable", status_code=500)
        return make_page([{"id": 1, "name": "Acme"}])

    client = FakeClient(handler)
    notifier = Notifier()

    async def scenario():
        controller = _controller(client, session, path="/brands", notifier=notifier)
        controller.start()
        await controller.settled()
        behaviour["fail"] = True
        controller.set_page(2)
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert controller.items == [{"id": 1, "name": "Acme"}]
    assert controller.state is FetchState.ERRORED
    assert controller.is_loading is False
    assert isinstance(controller.error, ApiError)
    assert notifier.errors() == ["Failed to fetch data from /brands"]


def test_unexpected_error_is_contained_and_reported(session, caplog):
    client = FakeClient(lambda path, params: KeyError("pagination"))
    notifier = Notifier()

    async def scenario():
        controller = _controller(client, session, path="/repairs", notifier=notifier)
        task = controller.start()
        await controller.settled()
        return controller, task

    with caplog.at_level(logging.ERROR, logger="ims_client.listing.controller"):
        controller, task = asyncio.run(scenario())

    assert task.exception() is None
    assert controller.state is FetchState.ERRORED
    assert isinstance(controller.error, KeyError)
    assert notifier.errors() == ["Failed to fetch data from /repairs"]
    assert any(record.exc_info for record in caplog.records)


def test_superseded_failure_is_silent(session):
    def handler(path, params):
        if params["page"] == 2:
            return ApiError("timeout", kind="transport")
        return make_page([{"id": params["page"]}], page=params["page"])

    client = FakeClient(handler)
    notifier = Notifier()

    async def scenario():
        controller = _controller(client, session, notifier=notifier)
        slow = asyncio.Event()
        client.gates[1] = slow
        failing = controller.set_page(2)
        controller.set_page(3)
        await controller.settled()
        slow.set()
        await failing
        return controller

    controller = asyncio.run(scenario())

    assert notifier.errors() == []
    assert controller.items == [{"id": 3}]
    assert controller.state is FetchState.LOADED


def test_unauthorized_is_reported_like_any_failure(session):
    client = FakeClient(lambda path, params: AuthenticationError("Token expired", status_code=401))
    notifier = Notifier()

    async def scenario():
        controller = _controller(client, session, path="/sales", notifier=notifier)
        controller.start()
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state is FetchState.ERRORED
    assert notifier.errors() == ["Failed to fetch data from /sales"]


def test_no_token_skips_fetch(fake_client):
    async def scenario():
        controller = _controller(fake_client, AuthSession())
        task = controller.start()
        await controller.settled()
        return controller, task

    controller, task = asyncio.run(scenario())

    assert task is None
    assert fake_client.calls == []
    assert controller.state is FetchState.IDLE


def test_navigation_seed_applies_once_and_clears_on_manual_filter(fake_client, session):
    async def scenario():
        controller = _controller(
            fake_client,
            session,
            path="/inventory",
            default_filters={"status": "All", "brandId": "All"},
            seed_filters={"status": "BORROWED"},
        )
        controller.start()
        await controller.settled()
        seeded_params = dict(fake_client.params())
        seeded_flag = controller.seeded

        controller.set_filter("brandId", "3")
        await controller.settled()
        cleared_flag = controller.seeded

        controller.reset()
        await controller.settled()
        return seeded_params, seeded_flag, cleared_flag

    seeded_params, seeded_flag, cleared_flag = asyncio.run(scenario())

    assert seeded_params["status"] == "BORROWED"
    assert seeded_params["brandId"] == "All"
    assert seeded_flag is True
    assert cleared_flag is False
    assert fake_client.params()["status"] == "All"
    assert fake_client.params()["brandId"] == "All"


def test_reset_keeps_active_seed(fake_client, session):
    async def scenario():
        controller = _controller(
            fake_client,
            session,
            default_filters={"status": "All"},
            seed_filters={"status": "OVERDUE"},
        )
        controller.set_search("john")
        await controller.settled()
        controller.reset()
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert fake_client.params()["status"] == "OVERDUE"
    assert fake_client.params()["search"] == ""
    assert controller.search_term == ""


def test_apply_navigation_reseeds_filters(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session, default_filters={"status": "All"})
        controller.start()
        await controller.settled()
        controller.apply_navigation({"status": "RETURNED"})
        await controller.settled()
        return controller

    controller = asyncio.run(scenario())

    assert controller.seeded is True
    assert fake_client.params()["status"] == "RETURNED"


def test_exclude_ids_are_comma_joined_without_duplicates(fake_client, session):
    async def scenario():
        controller = _controller(fake_client, session, path="/inventory", exclude_ids=[3, 1, 3])
        controller.start()
        await controller.settled()
        controller.set_exclude_ids([])
        await controller.settled()

    asyncio.run(scenario())

    assert fake_client.params(0)["excludeIds"] == "3,1"
    assert "excludeIds" not in fake_client.params()


def test_close_discards_in_flight_response(session):
    client = FakeClient(lambda path, params: make_page([{"id": 9}]))

    async def scenario():
        controller = _controller(client, session)
        slow = asyncio.Event()
        client.gates[1] = slow
        task = controller.start()
        controller.close()
        slow.set()
        await task
        return controller, controller.refresh()

    controller, refresh_task = asyncio.run(scenario())

    assert controller.items == []
    assert controller.state is FetchState.IDLE
    assert refresh_task is None


def test_for_resource_uses_registry_and_config(fake_client, session, tmp_path):
    cfg_path = tmp_path / "ims.config.yaml"
    cfg_path.write_text("listing:\n  default_page_size: 20\n  search_debounce_ms: 0\n  sort_by: createdAt\n")
    config = load_config(cfg_path)

    async def scenario():
        controller = PaginatedFetchController.for_resource(fake_client, session, get_resource("inventory"), config)
        controller.start()
        await controller.settled()

    asyncio.run(scenario())

    path, params = fake_client.calls[0]
    assert path == "/inventory"
    assert params["limit"] == 20
    assert params["sortBy"] == "createdAt"
    assert params["status"] == params["categoryId"] == params["brandId"] == "All"
