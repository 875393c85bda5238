"""Paginated fetch controller.

Owns the query state of one list view and keeps ``items``/``pagination`` in
sync with the backend. Each ``set_*`` call issues a new request; requests
are numbered and only the response of the newest one is applied, so a slow
earlier response can never overwrite a later one.

States: IDLE -> FETCHING -> LOADED | ERRORED, and back to FETCHING on every
new request.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ims_client.api.client import ApiClient
from ims_client.api.errors import ApiError
from ims_client.api.models import PaginationMeta
from ims_client.api.resources import ResourceSpec
from ims_client.listing.query import ASC, DEFAULT_PAGE_SIZES, EntityId, QueryState, toggle_order
from ims_client.notify import Notifier
from ims_client.session import AuthSession
from ims_client.utils.debounce import Debouncer
from ims_client.utils.logging import get_logger

logger = get_logger(__name__)


class FetchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    LOADED = "loaded"
    ERRORED = "errored"


class PaginatedFetchController:
    """Query state + results of one paginated list endpoint."""

    def __init__(
        self,
        client: ApiClient,
        session: AuthSession,
        resource_path: str,
        *,
        default_page_size: int = 10,
        default_filters: Optional[Dict[str, str]] = None,
        exclude_ids: Optional[Iterable[EntityId]] = None,
        seed_filters: Optional[Dict[str, str]] = None,
        notifier: Optional[Notifier] = None,
        search_delay_ms: float = 500,
        sort_by: str = "updatedAt",
        sort_order: str = "desc",
        page_sizes: Sequence[int] = DEFAULT_PAGE_SIZES,
    ):
        """
        Args:
            client: API client used for the list requests
            session: Session whose token authorizes the requests
            resource_path: List endpoint, e.g. "/borrowings"
            default_page_size: Initial page size, must be in ``page_sizes``
            default_filters: Filters the view starts with (and returns to on reset)
            exclude_ids: Ids the backend should leave out of the results
            seed_filters: One-shot filters carried in by navigation; applied
                over the defaults until the first manual filter change
            notifier: Sink for user-visible failure messages
            search_delay_ms: Debounce delay for ``set_search``
            sort_by: Initial sort key
            sort_order: Initial sort order ("asc" or "desc")
            page_sizes: Allowed page sizes

        Raises:
            ValueError: If ``default_page_size`` is not an allowed page size
        """
        self.page_sizes = tuple(page_sizes)
        if default_page_size not in self.page_sizes:
            raise ValueError(f"Page size {default_page_size} not in allowed sizes {list(self.page_sizes)}")

        self.client = client
        self.session = session
        self.resource_path = resource_path
        self.notifier = notifier or Notifier()
        self.default_filters = dict(default_filters or {})
        self._seed: Optional[Dict[str, str]] = dict(seed_filters) if seed_filters else None

        self.query = QueryState(
            page_size=default_page_size,
            sort_by=sort_by,
            sort_order=sort_order,
            filters=self._base_filters(),
            exclude_ids=list(exclude_ids or []),
        )
        self.items: List[Dict[str, Any]] = []
        self.pagination = PaginationMeta.optimistic(default_page_size)
        self.state = FetchState.IDLE
        self.error: Optional[Exception] = None
        self.search_term = ""

        self._search = Debouncer(search_delay_ms, on_commit=self._on_search_committed, initial="")
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def for_resource(
        cls,
        client: ApiClient,
        session: AuthSession,
        resource: ResourceSpec,
        config: Dict[str, Any],
        **overrides: Any,
    ) -> "PaginatedFetchController":
        """Build a controller from a registry entry and the ``listing`` config section."""
        listing = config["listing"]
        kwargs: Dict[str, Any] = {
            "default_page_size": listing["default_page_size"],
            "default_filters": resource.default_filters,
            "search_delay_ms": listing["search_debounce_ms"],
            "sort_by": listing["sort_by"],
            "sort_order": listing["sort_order"],
            "page_sizes": listing["page_sizes"],
        }
        kwargs.update(overrides)
        return cls(client, session, resource.path, **kwargs)

    @property
    def is_loading(self) -> bool:
        return self.state is FetchState.FETCHING

    @property
    def filters(self) -> Dict[str, str]:
        return dict(self.query.filters)

    @property
    def sort_by(self) -> str:
        return self.query.sort_by

    @property
    def sort_order(self) -> str:
        return self.query.sort_order

    @property
    def debounced_search_term(self) -> str:
        return self.query.search

    @property
    def seeded(self) -> bool:
        """True while navigation-seeded filters are still in effect."""
        return self._seed is not None

    @property
    def generation(self) -> int:
        return self._generation

    def request_params(self) -> Dict[str, Any]:
        return self.query.to_params()

    def start(self) -> Optional[asyncio.Task]:
        """Issue the initial request (the view was mounted)."""
        return self._fetch()

    def refresh(self) -> Optional[asyncio.Task]:
        """Re-issue the current query, e.g. after a create/update/delete."""
        return self._fetch()

    def set_search(self, text: str) -> None:
        """Update the search input; the request follows once typing pauses."""
        self.search_term = text
        self._reset_page()
        self._search.push(text)

    def set_page(self, page: int) -> Optional[asyncio.Task]:
        if page < 1:
            raise ValueError(f"Page must be >= 1, got {page}")
        self.query.page = page
        self.pagination = self.pagination.model_copy(update={"current_page": page})
        return self._fetch()

    def set_page_size(self, page_size: int) -> Optional[asyncio.Task]:
        page_size = int(page_size)
        if page_size not in self.page_sizes:
            raise ValueError(f"Page size {page_size} not in allowed sizes {list(self.page_sizes)}")
        self.query.page_size = page_size
        self.query.page = 1
        # Corrected by the next response.
        self.pagination = PaginationMeta.optimistic(page_size)
        return self._fetch()

    def set_filter(self, name: str, value: str) -> Optional[asyncio.Task]:
        self.query.filters = {**self.query.filters, name: value}
        if self._seed is not None:
            logger.debug(f"{self.resource_path}: manual filter change clears navigation seed {self._seed}")
            self._seed = None
        self._reset_page()
        return self._fetch()

    def set_sort(self, key: str) -> Optional[asyncio.Task]:
        if key == self.query.sort_by:
            self.query.sort_order = toggle_order(self.query.sort_order)
        else:
            self.query.sort_by = key
            self.query.sort_order = ASC
        self._reset_page()
        return self._fetch()

    def set_exclude_ids(self, ids: Iterable[EntityId]) -> Optional[asyncio.Task]:
        self.query.exclude_ids = list(ids)
        self._reset_page()
        return self._fetch()

    def apply_navigation(self, seed_filters: Optional[Dict[str, str]] = None) -> Optional[asyncio.Task]:
        """
        Re-enter the view, optionally with a new navigation payload.

        A payload replaces any previous seed and is merged over the current
        filters; without one the current query is simply re-issued.
        """
        if seed_filters:
            self._seed = dict(seed_filters)
            self.query.filters = {**self.query.filters, **self._seed}
            self._reset_page()
        return self._fetch()

    def reset(self) -> Optional[asyncio.Task]:
        """Back to default filters (plus an active seed), no search, page 1."""
        self._search.cancel()
        self._search.value = ""
        self.search_term = ""
        self.query.search = ""
        self.query.filters = self._base_filters()
        self._reset_page()
        return self._fetch()

    async def settled(self) -> None:
        """Wait for the pending search debounce and the newest request."""
        await self._search.settled()
        while self._task is not None and not self._task.done():
            await asyncio.wait([self._task])

    def close(self) -> None:
        """Stop applying results (the view went away)."""
        self._closed = True
        self._search.cancel()
        self._generation += 1
        if self.state is FetchState.FETCHING:
            self.state = FetchState.IDLE

    def _base_filters(self) -> Dict[str, str]:
        return {**self.default_filters, **(self._seed or {})}

    def _reset_page(self) -> None:
        self.query.page = 1
        if self.pagination.current_page != 1:
            self.pagination = self.pagination.model_copy(update={"current_page": 1})

    def _on_search_committed(self, text: str) -> None:
        self.query.search = text
        self.query.page = 1
        self._fetch()

    def _fetch(self) -> Optional[asyncio.Task]:
        if self._closed:
            logger.debug(f"{self.resource_path}: controller closed, not fetching")
            return None
        if not self.session.is_authenticated:
            logger.debug(f"{self.resource_path}: no session token, skipping fetch")
            return None

        self._generation += 1
        generation = self._generation
        params = self.request_params()
        self.state = FetchState.FETCHING
        task = asyncio.get_running_loop().create_task(self._run(generation, params))
        self._task = task
        return task

    async def _run(self, generation: int, params: Dict[str, Any]) -> None:
        try:
            response = await self.client.afetch_list(self.resource_path, params)
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"{self.resource_path}: dropping failure of superseded request #{generation}")
                return
            if isinstance(e, ApiError):
                logger.error(f"Failed to fetch {self.resource_path} with {params}: {e}")
            else:
                logger.exception(f"Unexpected error fetching {self.resource_path} with {params}: {e}")
            self.error = e
            self.state = FetchState.ERRORED
            self.notifier.error(f"Failed to fetch data from {self.resource_path}")
            return

        if generation != self._generation:
            logger.debug(f"{self.resource_path}: dropping stale response of request #{generation}")
            return

        self.items = list(response.data)
        self.pagination = response.pagination
        self.error = None
        self.state = FetchState.LOADED
        logger.debug(
            f"{self.resource_path}: page {self.pagination.current_page}/{self.pagination.total_pages}, "
            f"{len(self.items)} of {self.pagination.total_items} items"
        )
