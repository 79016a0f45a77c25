from typing import Any, List
import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from . import config
from .errors import from_response, transport_error
from .schemas import DataEnvelope, Item, ItemCreate, Movement, MovementCreate

logger = logging.getLogger(__name__)

_item_envelope = TypeAdapter(DataEnvelope[Item])
_items_envelope = TypeAdapter(DataEnvelope[List[Item]])
_movement_envelope = TypeAdapter(DataEnvelope[Movement])
_movements_envelope = TypeAdapter(DataEnvelope[List[Movement]])


class InventoryApiClient:
    """
    Typed access to the inventory REST backend.
    Every failure leaves this class as an ApiError.
    """

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, adapter: TypeAdapter, payload: dict | None = None) -> Any:
        logger.info(f"[API Request] {method} {path} {payload if payload is not None else ''}".rstrip())
        try:
            response = await self._client.request(method, path, json=payload)
            response.raise_for_status() # Raise exception for 4xx/5xx status codes
            envelope = adapter.validate_python(response.json())
        except httpx.HTTPStatusError as e:
            error_body = e.response.text
            logger.error(f"[API Response Error] {method} {path} returned status {e.response.status_code}. Response: {error_body[:500]}")
            raise from_response(e.response) from e
        except httpx.TimeoutException as e:
            logger.error(f"[API Response Error] {method} {path} timed out after {self._client.timeout.read}s")
            raise transport_error(e) from e
        except httpx.RequestError as e:
            logger.error(f"[API Response Error] Could not reach backend for {method} {path}: {e}")
            raise transport_error(e) from e
        except (ValueError, ValidationError) as e:
            # Non-JSON body or a payload that doesn't match the resource shape
            logger.error(f"[API Response Error] {method} {path} returned a malformed body: {e}")
            raise transport_error(e) from e
        logger.debug(f"[API Response] {path} {response.text[:500]}")
        return envelope.data

    # --- Items ---

    async def list_items(self) -> List[Item]:
        """All items with their current stock."""
        return await self._request("GET", "/items", _items_envelope)

    async def get_item(self, item_id: int) -> Item:
        return await self._request("GET", f"/items/{item_id}", _item_envelope)

    async def create_item(self, item: ItemCreate) -> Item:
        return await self._request("POST", "/items", _item_envelope, item.model_dump(mode="json"))

    # --- Movements ---

    async def list_movements(self, item_id: int | None = None) -> List[Movement]:
        """All movements, or only those of one item when item_id is given."""
        path = "/movements" if item_id is None else f"/items/{item_id}/movements"
        return await self._request("GET", path, _movements_envelope)

    async def create_movement(self, movement: MovementCreate) -> Movement:
        return await self._request("POST", "/movements", _movement_envelope, movement.model_dump(mode="json"))
