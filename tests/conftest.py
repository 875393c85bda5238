"""Pytest configuration and fixtures."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from ims_client.api.models import ListResponse
from ims_client.session import AuthSession


def make_page(
    items: List[Dict[str, Any]],
    *,
    page: int = 1,
    per_page: int = 10,
    total: Optional[int] = None,
    total_pages: Optional[int] = None,
) -> ListResponse:
    """Build a list response the way the backend computes pagination."""
    total = len(items) if total is None else total
    if total_pages is None:
        total_pages = -(-total // per_page)
    return ListResponse.model_validate(
        {
            "data": items,
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalItems": total,
                "itemsPerPage": per_page,
            },
        }
    )


class FakeClient:
    """Stands in for ApiClient in controller and combobox tests.

    ``handler(path, params)`` returns the response or an exception to raise.
    A request can be held back by registering an event under its 1-based
    call number in ``gates``.
    """

    def __init__(self, handler: Optional[Callable[[str, Dict[str, Any]], Any]] = None):
        self.handler = handler or (lambda path, params: make_page([]))
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.gates: Dict[int, asyncio.Event] = {}

    async def _answer(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        params = dict(params or {})
        self.calls.append((path, params))
        gate = self.gates.get(len(self.calls))
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        result = self.handler(path, params)
        if isinstance(result, Exception):
            raise result
        return result

    async def afetch_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> ListResponse:
        return await self._answer(path, params)

    async def aget(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._answer(path, params)

    def params(self, index: int = -1) -> Dict[str, Any]:
        return self.calls[index][1]


@pytest.fixture
def session():
    """A logged-in admin session that is not persisted."""
    return AuthSession(
        token="test-token",
        user={"id": 1, "username": "admin", "name": "Admin", "role": "ADMIN"},
    )


@pytest.fixture
def fake_client():
    return FakeClient()
