"""Wire models for backend responses.

Entities themselves stay plain dicts: every resource has its own shape and
the client only needs ``id`` plus whatever the label formatter reads.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PaginationMeta(BaseModel):
    """Server-reported page window over a larger result set."""

    model_config = ConfigDict(populate_by_name=True)

    current_page: int = Field(default=1, alias="currentPage")
    total_pages: int = Field(default=1, alias="totalPages")
    total_items: int = Field(default=0, alias="totalItems")
    items_per_page: int = Field(default=10, alias="itemsPerPage")

    @field_validator("current_page", "items_per_page")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(value, 1)

    @field_validator("total_items")
    @classmethod
    def _not_negative(cls, value: int) -> int:
        return max(value, 0)

    @model_validator(mode="after")
    def _normalize_total_pages(self) -> "PaginationMeta":
        # An empty result set still has one (empty) page.
        if self.total_pages < 1:
            self.total_pages = 1
        return self

    @classmethod
    def optimistic(cls, items_per_page: int) -> "PaginationMeta":
        """Placeholder shown after a page-size change until the server answers."""
        return cls(current_page=1, total_pages=1, total_items=0, items_per_page=items_per_page)

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    def to_wire(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class ListResponse(BaseModel):
    """Body of ``GET /<resource>``."""

    data: List[Dict[str, Any]]
    pagination: PaginationMeta


class SessionUser(BaseModel):
    """User payload returned by ``POST /auth/login``."""

    model_config = ConfigDict(extra="allow")

    id: int
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "EMPLOYEE"


class LoginResponse(BaseModel):
    token: str
    user: SessionUser
