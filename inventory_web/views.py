from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List
import datetime
import logging

from .api_client import InventoryApiClient
from .cache import ITEMS_KEY, FetchStatus, QueryCache, movements_key
from .errors import ApiError, GENERIC_ERROR_MESSAGE
from .schemas import Item, Movement

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_quantity(value) -> str:
    """Decimal string or number rendered with exactly two decimals, half up."""
    try:
        return str(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return str(value)


def format_timestamp(value: datetime.datetime) -> str:
    """Local display time. Naive timestamps from the backend are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone().strftime(TIMESTAMP_FORMAT)


@dataclass
class Panel:
    """Settled content of a list or detail panel: data, an error, or earlier data next to an error."""
    data: List[Any] | None = None
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.data is not None and len(self.data) == 0


def _message(exc: Exception) -> str:
    return exc.message if isinstance(exc, ApiError) else GENERIC_ERROR_MESSAGE


class ItemListView:
    """Item table with live stock and one expandable movement history panel."""

    def __init__(self, api: InventoryApiClient, cache: QueryCache):
        self.api = api
        self.cache = cache
        self.expanded_item_id: int | None = None

    def toggle(self, item_id: int) -> int | None:
        # Same item collapses, another item replaces the open panel
        self.expanded_item_id = None if self.expanded_item_id == item_id else item_id
        return self.expanded_item_id

    async def fetch_items(self) -> List[Item]:
        return await self.cache.get(ITEMS_KEY, self.api.list_items)

    async def fetch_movements(self, item_id: int) -> List[Movement]:
        async def load():
            await self.api.get_item(item_id) # NotFound surfaces before asking for history
            return await self.api.list_movements(item_id)

        return await self.cache.get(movements_key(item_id), load)

    async def load_items(self) -> Panel:
        try:
            return Panel(data=await self.fetch_items())
        except Exception as e:
            logger.warning(f"Item list unavailable: {e!r}")
            return self._failed(ITEMS_KEY, e)

    def cached_items(self) -> Panel:
        """Whatever the last item list fetch settled into. Never fetches."""
        state = self.cache.peek(ITEMS_KEY)
        error = _message(state.error) if state.status == FetchStatus.ERROR else None
        return Panel(data=state.data if state.has_data else None, error=error)

    async def load_movements(self, item_id: int) -> Panel:
        try:
            return Panel(data=await self.fetch_movements(item_id))
        except Exception as e:
            logger.warning(f"Movement history for item {item_id} unavailable: {e!r}")
            return self._failed(movements_key(item_id), e)

    def _failed(self, key, exc: Exception) -> Panel:
        # Earlier data stays on screen next to the error
        state = self.cache.peek(key)
        return Panel(data=state.data if state.has_data else None, error=_message(exc))
