"""Headless search combobox for picking one related entity by id."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from ims_client.api.client import ApiClient
from ims_client.api.errors import HTTP_UNSTRUCTURED, ApiError
from ims_client.api.resources import Entity, ResourceSpec
from ims_client.notify import Notifier
from ims_client.utils.debounce import Debouncer
from ims_client.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DELAY_MS = 300
DEFAULT_LIMIT = 10


def _as_key(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class SearchCombobox:
    """Incremental search over one resource plus the label of the current selection.

    Closed comboboxes never touch the network. Opening searches with the
    current (empty) query; typing is debounced before each request. When the
    combobox was given an ``initial_entity`` its label is available right
    away and opening does not refetch until the user types.
    """

    def __init__(
        self,
        client: ApiClient,
        resource: ResourceSpec,
        *,
        selected_value: Any = None,
        on_select: Optional[Callable[[str], None]] = None,
        initial_entity: Optional[Entity] = None,
        notifier: Optional[Notifier] = None,
        delay_ms: Optional[float] = None,
        limit: int = DEFAULT_LIMIT,
    ):
        self.client = client
        self.resource = resource
        self.on_select = on_select
        self.notifier = notifier or Notifier()
        self.limit = limit
        if delay_ms is None:
            delay_ms = resource.search_debounce_ms or DEFAULT_DELAY_MS
        self.delay_ms = delay_ms

        self.is_open = False
        self.is_loading = False
        self.query = ""
        self.results: List[Entity] = []
        self.selected_value = _as_key(selected_value)
        self.selected_entity: Optional[Entity] = None

        self._debouncer = Debouncer(delay_ms, on_commit=self._on_query_committed, initial="")
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._seeded = False
        self._all_entities: Optional[List[Entity]] = None

        if initial_entity:
            self.set_initial_entity(initial_entity)

    @classmethod
    def for_resource(
        cls,
        client: ApiClient,
        resource: ResourceSpec,
        config: Dict[str, Any],
        **overrides: Any,
    ) -> "SearchCombobox":
        combobox = config["combobox"]
        kwargs: Dict[str, Any] = {
            "delay_ms": resource.search_debounce_ms or combobox["debounce_ms"],
            "limit": combobox["limit"],
        }
        kwargs.update(overrides)
        return cls(client, resource, **kwargs)

    @property
    def label(self) -> str:
        if self.selected_entity is not None:
            return self.resource.label(self.selected_entity)
        return self.resource.placeholder

    @property
    def is_empty(self) -> bool:
        return self.is_open and not self.is_loading and not self.results

    def set_initial_entity(self, entity: Entity) -> None:
        """Show ``entity`` as the current selection without a round trip."""
        self.selected_entity = entity
        if not self.query:
            self.results = [entity]
            self._seeded = True

    def set_selected_value(self, value: Any) -> None:
        """Follow an externally changed selection (e.g. a form reset)."""
        self.selected_value = _as_key(value)
        if self.selected_value is None:
            self.selected_entity = None
            return
        found = self._find(self.selected_value)
        if found is not None:
            self.selected_entity = found

    def open(self) -> Optional[asyncio.Task]:
        if self.is_open:
            return None
        self.is_open = True
        self._all_entities = None
        if self._seeded and not self.query:
            logger.debug(f"{self.resource.key} combobox: showing initial entity, search deferred")
            return None
        return self._search(self.query)

    def close(self) -> None:
        self.is_open = False
        self.is_loading = False
        self.query = ""
        self._debouncer.cancel()
        self._debouncer.value = ""
        # Results of requests still in flight belong to the closed popover.
        self._generation += 1

    def set_query(self, text: str) -> None:
        self.query = text
        if not self.is_open:
            return
        self._debouncer.push(text)

    def select(self, entity_id: Any) -> Entity:
        """
        Pick one of the current results.

        Raises:
            ValueError: If ``entity_id`` is not among the results
        """
        key = str(entity_id)
        entity = self._find(key)
        if entity is None:
            raise ValueError(f"No {self.resource.singular} with id {key} in the current results")
        self.selected_value = key
        self.selected_entity = entity
        if self.on_select is not None:
            self.on_select(key)
        self.close()
        return entity

    async def settled(self) -> None:
        await self._debouncer.settled()
        while self._task is not None and not self._task.done():
            await asyncio.wait([self._task])

    def _find(self, key: str) -> Optional[Entity]:
        for entity in self.results:
            if str(entity.get("id")) == key:
                return entity
        return None

    def _on_query_committed(self, text: str) -> None:
        if self.is_open:
            self._search(text)

    def _search(self, query: str) -> asyncio.Task:
        self._generation += 1
        self._seeded = False
        self.is_loading = True
        task = asyncio.get_running_loop().create_task(self._run(self._generation, query))
        self._task = task
        return task

    async def _run(self, generation: int, query: str) -> None:
        try:
            if self.resource.fetch_all:
                results = await self._search_all(query)
            else:
                response = await self.client.afetch_list(
                    self.resource.path, {"search": query, "limit": self.limit}
                )
                results = list(response.data)
        except Exception as e:
            if generation != self._generation:
                return
            if isinstance(e, ApiError):
                logger.error(f"{self.resource.key} search for '{query}' failed: {e}")
            else:
                logger.exception(f"Unexpected error in {self.resource.key} search for '{query}': {e}")
            self.is_loading = False
            self.notifier.error(self.resource.search_error)
            return

        if generation != self._generation:
            logger.debug(f"{self.resource.key} combobox: dropping stale results for '{query}'")
            return

        self.results = results
        self.is_loading = False
        if self.selected_value is not None:
            found = self._find(self.selected_value)
            if found is not None:
                self.selected_entity = found

    async def _search_all(self, query: str) -> List[Entity]:
        # Resources like users are loaded whole once per open and filtered locally.
        if self._all_entities is None:
            body = await self.client.aget(self.resource.path, {"all": "true"})
            if not isinstance(body, list):
                raise ApiError(
                    f"Expected a list from {self.resource.path}?all=true",
                    status_code=200,
                    kind=HTTP_UNSTRUCTURED,
                )
            self._all_entities = body
        needle = query.strip().lower()
        if not needle:
            return list(self._all_entities)
        return [e for e in self._all_entities if needle in self.resource.label(e).lower()]
