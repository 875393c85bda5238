"""Registry of backend resources.

Each entry names the list endpoint, the filters its list view starts with,
and how a single entity is rendered as a one-line label in a combobox or
a CLI table.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ims_client.api.client import ApiClient
from ims_client.api.models import ListResponse

Entity = Dict[str, Any]


def _name(entity: Entity) -> str:
    return str(entity.get("name") or entity.get("id", ""))


def _customer_label(entity: Entity) -> str:
    code = entity.get("customerCode")
    return f"{_name(entity)} ({code})" if code else _name(entity)


def _user_label(entity: Entity) -> str:
    username = entity.get("username")
    return f"{_name(entity)} ({username})" if username else _name(entity)


def _product_model_label(entity: Entity) -> str:
    category = (entity.get("category") or {}).get("name")
    brand = (entity.get("brand") or {}).get("name")
    parts = [p for p in (category, brand, entity.get("modelNumber")) if p]
    return " - ".join(str(p) for p in parts) or str(entity.get("id", ""))


def _item_label(entity: Entity) -> str:
    model = entity.get("productModel") or {}
    parts = [
        p for p in (entity.get("assetCode"), model.get("modelNumber"), entity.get("serialNumber")) if p
    ]
    return " / ".join(str(p) for p in parts) or str(entity.get("id", ""))


def _record_label(entity: Entity) -> str:
    status = entity.get("status")
    return f"#{entity.get('id', '')} {status}" if status else f"#{entity.get('id', '')}"


@dataclass(frozen=True)
class ResourceSpec:
    """Static description of one backend resource."""

    key: str
    path: str
    singular: str
    plural: str
    label: Callable[[Entity], str] = _name
    default_filters: Dict[str, str] = field(default_factory=dict)
    searchable: bool = False
    search_debounce_ms: Optional[int] = None
    fetch_all: bool = False
    actions: tuple = ()

    @property
    def placeholder(self) -> str:
        return f"Select {self.singular}..."

    @property
    def search_error(self) -> str:
        return f"Failed to search for {self.plural}."


RESOURCES: Dict[str, ResourceSpec] = {
    spec.key: spec
    for spec in [
        ResourceSpec("addresses", "/addresses", "address", "addresses", searchable=True),
        ResourceSpec(
            "asset-assignments",
            "/asset-assignments",
            "asset assignment",
            "asset assignments",
            label=_record_label,
            actions=("return",),
        ),
        ResourceSpec(
            "assets",
            "/assets",
            "asset",
            "assets",
            label=_item_label,
            default_filters={"status": "All"},
            actions=("decommission", "reinstate"),
        ),
        ResourceSpec(
            "borrowings",
            "/borrowings",
            "borrowing",
            "borrowings",
            label=_record_label,
            default_filters={"status": "All"},
            actions=("return",),
        ),
        ResourceSpec("brands", "/brands", "brand", "brands", searchable=True),
        ResourceSpec("categories", "/categories", "category", "categories", searchable=True),
        ResourceSpec(
            "customers",
            "/customers",
            "customer",
            "customers",
            label=_customer_label,
            searchable=True,
        ),
        ResourceSpec(
            "inventory",
            "/inventory",
            "inventory item",
            "inventory items",
            label=_item_label,
            default_filters={"status": "All", "categoryId": "All", "brandId": "All"},
            actions=("decommission", "reinstate", "reserve", "unreserve", "defect", "in-stock"),
        ),
        ResourceSpec(
            "product-models",
            "/product-models",
            "product model",
            "product models",
            label=_product_model_label,
            searchable=True,
            search_debounce_ms=500,
        ),
        ResourceSpec("repairs", "/repairs", "repair", "repairs", label=_record_label),
        ResourceSpec(
            "sales",
            "/sales",
            "sale",
            "sales",
            label=_record_label,
            default_filters={"status": "All"},
        ),
        ResourceSpec("suppliers", "/suppliers", "supplier", "suppliers", searchable=True),
        ResourceSpec(
            "users",
            "/users",
            "user",
            "users",
            label=_user_label,
            searchable=True,
            fetch_all=True,
        ),
    ]
}


def get_resource(key: str) -> ResourceSpec:
    """
    Look up a resource by key.

    Raises:
        ValueError: If the resource is not registered
    """
    spec = RESOURCES.get(key)
    if spec is None:
        raise ValueError(f"Unknown resource '{key}'. Known: {', '.join(sorted(RESOURCES))}")
    return spec


def searchable_resources() -> List[ResourceSpec]:
    return [spec for spec in RESOURCES.values() if spec.searchable]


class ResourceEndpoint:
    """CRUD calls against one resource, for page-level code.

    List views should go through PaginatedFetchController and call its
    ``refresh()`` after a mutation here succeeds.
    """

    def __init__(self, client: ApiClient, spec: ResourceSpec):
        self.client = client
        self.spec = spec

    def _item_path(self, entity_id: Any) -> str:
        return f"{self.spec.path}/{entity_id}"

    def list(self, params: Optional[Dict[str, Any]] = None) -> ListResponse:
        return self.client.fetch_list(self.spec.path, params)

    def get(self, entity_id: Any) -> Entity:
        return self.client.get(self._item_path(entity_id))

    def create(self, payload: Dict[str, Any]) -> Entity:
        return self.client.request("POST", self.spec.path, json=payload)

    def update(self, entity_id: Any, payload: Dict[str, Any]) -> Entity:
        return self.client.request("PUT", self._item_path(entity_id), json=payload)

    def delete(self, entity_id: Any) -> None:
        self.client.request("DELETE", self._item_path(entity_id))

    def action(self, entity_id: Any, action: str, payload: Optional[Dict[str, Any]] = None) -> Entity:
        """
        PATCH a state transition such as ``/borrowings/<id>/return``.

        Raises:
            ValueError: If the resource does not support ``action``
        """
        if action not in self.spec.actions:
            raise ValueError(f"Resource '{self.spec.key}' does not support action '{action}'")
        return self.client.request("PATCH", f"{self._item_path(entity_id)}/{action}", json=payload)
