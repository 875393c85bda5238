"""Query state of a paginated list view."""

from typing import Any, Dict, Iterable, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ASC = "asc"
DESC = "desc"
DEFAULT_PAGE_SIZES = (10, 20, 50, 100)

EntityId = Union[int, str]


class QueryState(BaseModel):
    """Everything that goes into one list request.

    ``search`` is the committed (debounced) search term, not the raw input.
    """

    model_config = ConfigDict(validate_assignment=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    search: str = ""
    sort_by: str = "updatedAt"
    sort_order: str = DESC
    filters: Dict[str, str] = Field(default_factory=dict)
    exclude_ids: List[EntityId] = Field(default_factory=list)

    @field_validator("sort_order")
    @classmethod
    def _check_sort_order(cls, value: str) -> str:
        if value not in (ASC, DESC):
            raise ValueError(f"sort_order must be '{ASC}' or '{DESC}', got '{value}'")
        return value

    @field_validator("exclude_ids")
    @classmethod
    def _dedupe_ids(cls, value: List[EntityId]) -> List[EntityId]:
        return list(dict.fromkeys(value))

    def to_params(self) -> Dict[str, Any]:
        """
        Compose the query string parameters for the list endpoint.

        Filters are spread after ``search`` like the backend expects;
        ``excludeIds`` is omitted when there is nothing to exclude.
        """
        params: Dict[str, Any] = {
            "page": self.page,
            "limit": self.page_size,
            "search": self.search,
        }
        params.update(self.filters)
        params["sortBy"] = self.sort_by
        params["sortOrder"] = self.sort_order
        if self.exclude_ids:
            params["excludeIds"] = join_ids(self.exclude_ids)
        return params


def toggle_order(order: str) -> str:
    return DESC if order == ASC else ASC


def join_ids(ids: Iterable[EntityId]) -> str:
    return ",".join(str(i) for i in ids)
