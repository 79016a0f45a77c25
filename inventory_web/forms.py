from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Sequence
import inspect
import logging
import math
import re

from .api_client import InventoryApiClient
from .errors import ApiError, ErrorKind
from .schemas import Item, ItemCreate, Movement, MovementCreate, MovementType, Unit

logger = logging.getLogger(__name__)

INSUFFICIENT_STOCK_MARK = "❌" # Red cross shown in front of stock errors
# Plain decimal notation only; no digit separators, nan or inf
QUANTITY_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

SuccessObserver = Callable[[Any], Awaitable[None] | None]


def error_lines(error: ApiError, fallback: str) -> List[str]:
    """One 'field: messages' line per field when details exist, else the top-level message."""
    if error.details:
        return [f"{name}: {', '.join(messages)}" for name, messages in error.details.items()]
    return [error.message or fallback]


def parse_quantity(text: str) -> float | None:
    """Positive finite number typed by the user, or None."""
    text = str(text).strip()
    if not QUANTITY_PATTERN.match(text):
        return None
    value = float(text)
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def select_default_item(items: Sequence[Item], item_id: int) -> int:
    """Picks the first listed item when nothing is selected yet. A convenience, not validation."""
    if items and item_id == 0:
        return items[0].id
    return item_id


async def _notify(observer: SuccessObserver | None, result):
    if observer is None:
        return
    outcome = observer(result)
    if inspect.isawaitable(outcome):
        await outcome


# --- Item creation ---

@dataclass
class ItemDraft:
    name: str = ""
    sku: str = ""
    unit: Unit = Unit.PCS


class ItemFormController:
    SUCCESS_NOTICE = "Item created successfully."

    def __init__(self, api: InventoryApiClient, on_success: SuccessObserver | None = None):
        self.api = api
        self.on_success = on_success
        self.draft = ItemDraft()
        self.is_pending = False
        self.error: List[str] | None = None
        self.notice: str | None = None # Success message awaiting acknowledgement

    def edit(self, name: str, value) -> bool:
        """Updates one draft field. Ignored while a submission is pending."""
        if self.is_pending:
            logger.info(f"Ignoring edit of '{name}' while item creation is pending")
            return False
        if name == "sku":
            value = value.upper()
        elif name == "unit":
            value = Unit(value)
        elif name != "name":
            raise ValueError(f"Unknown item form field: {name}")
        self.draft = replace(self.draft, **{name: value})
        return True

    def _precheck(self) -> str | None:
        if not self.draft.name.strip():
            return "Name is required"
        if not self.draft.sku.strip():
            return "SKU is required"
        return None

    async def submit(self) -> Item | None:
        if self.is_pending:
            logger.info("Item creation already in progress; submit ignored")
            return None
        self.error = None

        problem = self._precheck()
        if problem:
            logger.info(f"Item form rejected before submit: {problem}")
            self.error = [problem]
            return None

        self.is_pending = True
        try:
            item = await self.api.create_item(ItemCreate(name=self.draft.name, sku=self.draft.sku, unit=self.draft.unit))
        except ApiError as e:
            logger.warning(f"Error creating item: {e!r}")
            self.error = error_lines(e, "Failed to create item")
            return None
        finally:
            self.is_pending = False

        logger.info(f"Created item {item.id} ({item.sku})")
        self.error = None
        self.draft = ItemDraft()
        self.notice = self.SUCCESS_NOTICE
        await _notify(self.on_success, item)
        return item

    def acknowledge(self):
        self.notice = None


# --- Movement recording ---

@dataclass
class MovementDraft:
    item_id: int = 0 # 0 means nothing selected
    quantity: str = "" # Free text, parsed on submit
    movement_type: MovementType = MovementType.IN


class MovementFormController:
    SUCCESS_NOTICE = "Movement recorded successfully!"

    def __init__(self, api: InventoryApiClient, on_success: SuccessObserver | None = None):
        self.api = api
        self.on_success = on_success
        self.draft = MovementDraft()
        self.items: List[Item] = []
        self.is_pending = False
        self.error: List[str] | None = None
        self.error_marked = False # True for the insufficient stock case
        self.notice: str | None = None

    def sync_items(self, items: Sequence[Item]):
        """Refreshes the selectable items, auto-selecting the first when nothing is chosen."""
        self.items = list(items)
        item_id = select_default_item(self.items, self.draft.item_id)
        if item_id != self.draft.item_id:
            logger.debug(f"Auto-selected item {item_id} for movement form")
            self.draft = replace(self.draft, item_id=item_id)

    @property
    def has_items(self) -> bool:
        return bool(self.items)

    @property
    def can_submit(self) -> bool:
        return self.has_items and not self.is_pending

    @property
    def selected_item(self) -> Item | None:
        return next((item for item in self.items if item.id == self.draft.item_id), None)

    def edit(self, name: str, value) -> bool:
        if self.is_pending:
            logger.info(f"Ignoring edit of '{name}' while movement recording is pending")
            return False
        if name == "item_id":
            value = int(value)
        elif name == "movement_type":
            value = MovementType(value)
        elif name == "quantity":
            value = str(value)
        else:
            raise ValueError(f"Unknown movement form field: {name}")
        self.draft = replace(self.draft, **{name: value})
        return True

    def _set_error(self, lines: List[str] | None, marked: bool = False):
        self.error = lines
        self.error_marked = marked

    async def submit(self) -> Movement | None:
        if self.is_pending:
            logger.info("Movement recording already in progress; submit ignored")
            return None
        self._set_error(None)

        if self.draft.item_id == 0:
            self._set_error(["Please select an item"])
            logger.info("Movement form rejected before submit: no item selected")
            return None
        quantity = parse_quantity(self.draft.quantity)
        if quantity is None:
            self._set_error(["Quantity must be a positive number"])
            logger.info(f"Movement form rejected before submit: bad quantity {self.draft.quantity!r}")
            return None

        self.is_pending = True
        try:
            movement = await self.api.create_movement(
                MovementCreate(item_id=self.draft.item_id, quantity=quantity, movement_type=self.draft.movement_type)
            )
        except ApiError as e:
            logger.warning(f"Error recording movement: {e!r}")
            if e.kind == ErrorKind.INSUFFICIENT_STOCK:
                self._set_error([f"{INSUFFICIENT_STOCK_MARK} {e.message}"], marked=True)
            else:
                self._set_error(error_lines(e, "Failed to record movement"))
            return None
        finally:
            self.is_pending = False

        logger.info(f"Recorded {movement.movement_type.value} movement {movement.id} of {movement.quantity} for item {movement.item_id}")
        # Item and type stay selected for rapid repeated entry
        self.draft = replace(self.draft, quantity="")
        self._set_error(None)
        self.notice = self.SUCCESS_NOTICE
        await _notify(self.on_success, movement)
        return movement

    def acknowledge(self):
        self.notice = None
