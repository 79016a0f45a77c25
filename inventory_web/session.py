from functools import partial
import logging

import httpx

from . import config
from .api_client import InventoryApiClient
from .cache import QueryCache, invalidate_after_item_created, invalidate_after_movement_created
from .forms import ItemFormController, MovementFormController
from .views import ItemListView

logger = logging.getLogger(__name__)


class InventorySession:
    """
    Everything one client session owns: the API client, the shared query cache,
    both forms and the item list. Built at startup, closed at shutdown.
    """

    def __init__(self, api: InventoryApiClient, cache: QueryCache):
        self.api = api
        self.cache = cache
        # Successful mutations invalidate exactly the keys they touched
        self.item_form = ItemFormController(api, on_success=partial(invalidate_after_item_created, cache))
        self.movement_form = MovementFormController(api, on_success=partial(invalidate_after_movement_created, cache))
        self.item_list = ItemListView(api, cache)

    @classmethod
    def open(cls, transport: httpx.AsyncBaseTransport | None = None, cache: QueryCache | None = None) -> "InventorySession":
        logger.info(f"Opening client session against {config.API_BASE_URL}")
        return cls(InventoryApiClient(transport=transport), cache or QueryCache())

    @property
    def notice(self) -> str | None:
        return self.item_form.notice or self.movement_form.notice

    def acknowledge(self):
        self.item_form.acknowledge()
        self.movement_form.acknowledge()

    async def close(self):
        logger.info("Closing client session...")
        await self.cache.clear()
        await self.api.aclose()
