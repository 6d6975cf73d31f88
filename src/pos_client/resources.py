"""Resource wrappers over ``APIClient``.

Thin, payload-agnostic helpers for the endpoints the admin and cashier
screens use most. Payloads are passed through as given.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pos_client.auth import InMemoryTokenProvider
from pos_client.core.types import PayloadClass
from pos_client.pipeline.envelope import unwrap

if TYPE_CHECKING:
    from pos_client.client import APIClient


@dataclass(frozen=True, slots=True)
class Page:
    """One page of a listing plus the server's opaque pagination block."""

    items: Any
    pagination: Any = None


class AuthAPI:
    """Login and signup endpoints."""

    def __init__(self, client: APIClient) -> None:  # noqa: D107
        self._client = client

    async def signup(
        self, email: str, password: str, name: str, plan: str = "free"
    ) -> Any:
        """Create an account."""
        data = await self._client.post(
            "/auth/signup",
            {"email": email, "password": password, "name": name, "plan": plan},
        )
        self._remember_token(data)
        return data

    async def login(self, email: str, password: str) -> Any:
        """Log in with email and password; stores the returned token."""
        data = await self._client.post(
            "/auth/login", {"email": email, "password": password}
        )
        self._remember_token(data)
        return data

    async def pin_login(self, pin: str) -> Any:
        """Log in a cashier by PIN; stores the returned token."""
        data = await self._client.post("/auth/pin-login", {"pin": pin})
        self._remember_token(data)
        return data

    def logout(self) -> None:
        """Forget the stored credential."""
        self._client.tokens.clear_token()

    def _remember_token(self, data: Any) -> None:
        tokens = self._client.tokens
        if not isinstance(tokens, InMemoryTokenProvider):
            return
        if isinstance(data, Mapping) and isinstance(data.get("token"), str):
            tokens.set_token(data["token"])


class ProductsAPI:
    """Product catalogue endpoints."""

    def __init__(self, client: APIClient) -> None:  # noqa: D107
        self._client = client

    async def list(self, page: int = 1, per_page: int = 50) -> Page:
        """List products."""
        envelope = await self._client.request(
            "GET", "/products", params={"page": page, "per_page": per_page}
        )
        return Page(items=unwrap(envelope), pagination=envelope.meta.pagination)

    async def get(self, product_id: Any) -> Any:  # noqa: D102
        return await self._client.get(f"/products/{product_id}")

    async def create(self, product: Any) -> Any:  # noqa: D102
        return await self._client.post("/products", product)

    async def update(self, product_id: Any, product: Any) -> Any:  # noqa: D102
        return await self._client.put(f"/products/{product_id}", product)

    async def delete(self, product_id: Any) -> Any:  # noqa: D102
        return await self._client.delete(f"/products/{product_id}")

    async def update_stock(self, product_id: Any, quantity: Any) -> Any:
        """Set the stock level of a product."""
        return await self._client.put(
            f"/products/{product_id}/stock", {"quantity": quantity}
        )


class SalesAPI:
    """Sales endpoints."""

    def __init__(self, client: APIClient) -> None:  # noqa: D107
        self._client = client

    async def complete(self, sale: Any) -> Any:
        """Record a completed sale."""
        return await self._client.post("/sales", sale)

    async def list(self, page: int = 1, per_page: int = 50) -> Page:
        """List sales."""
        envelope = await self._client.request(
            "GET", "/sales", params={"page": page, "per_page": per_page}
        )
        return Page(items=unwrap(envelope), pagination=envelope.meta.pagination)

    async def get(self, sale_id: Any) -> Any:  # noqa: D102
        return await self._client.get(f"/sales/{sale_id}")


class OptimisticProducts:
    """Debounced, optimistic product writes for fast cashier/admin edits.

    Each helper applies the change through ``apply_locally`` right away and
    returns the future of the eventual commit. ``snapshot`` reads the value
    currently shown so it can be restored if the write fails.

    Each helper uses its own key, and commits are serialized per key only.
    ``update_product`` and ``update_image`` both ``PUT /products/<id>`` under
    different keys, so their commits may overlap; await one before starting
    the other when ordering matters.
    """

    def __init__(self, client: APIClient) -> None:  # noqa: D107
        self._client = client

    def update_product(
        self,
        product_id: Any,
        updates: Any,
        *,
        apply_locally: Callable[[Any], Any],
        snapshot: Callable[[], Any],
    ) -> asyncio.Future[Any]:
        """Debounced ``PUT /products/<id>`` (field class)."""
        return self._client.updates.schedule_update(
            f"product:{product_id}",
            updates,
            apply_locally=apply_locally,
            commit=lambda payload: self._client.put(f"/products/{product_id}", payload),
            snapshot=snapshot,
            payload_class=PayloadClass.FIELD,
        )

    def update_stock(
        self,
        product_id: Any,
        quantity: Any,
        *,
        apply_locally: Callable[[Any], Any],
        snapshot: Callable[[], Any],
    ) -> asyncio.Future[Any]:
        """Debounced ``PUT /products/<id>/stock`` (quantity class)."""
        return self._client.updates.schedule_update(
            f"product:{product_id}:stock",
            {"quantity": quantity},
            apply_locally=apply_locally,
            commit=lambda payload: self._client.put(
                f"/products/{product_id}/stock", payload
            ),
            snapshot=snapshot,
            payload_class=PayloadClass.QUANTITY,
        )

    def update_image(
        self,
        product_id: Any,
        image: str,
        *,
        apply_locally: Callable[[Any], Any],
        snapshot: Callable[[], Any],
    ) -> asyncio.Future[Any]:
        """Debounced image replacement (binary class).

        Not serialized with ``update_product`` for the same product, although
        both write ``/products/<id>``.
        """
        return self._client.updates.schedule_update(
            f"product:{product_id}:image",
            {"image": image},
            apply_locally=apply_locally,
            commit=lambda payload: self._client.put(f"/products/{product_id}", payload),
            snapshot=snapshot,
            payload_class=PayloadClass.BINARY,
        )
