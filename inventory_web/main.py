from fastapi import FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from contextlib import asynccontextmanager
from pathlib import Path
import logging

import httpx
import uvicorn

from . import config
from .cache import QueryCache
from .schemas import MovementType, Unit
from .session import InventorySession
from .views import format_quantity, format_timestamp

# Configure logging basic setup
logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.filters["quantity"] = format_quantity
templates.env.filters["timestamp"] = format_timestamp

UNIT_LABELS = {Unit.PCS: "Pieces (pcs)", Unit.KG: "Kilograms (kg)", Unit.LITRE: "Litres (litre)"}
MOVEMENT_TYPE_LABELS = {
    MovementType.IN: "IN - Add to stock",
    MovementType.OUT: "OUT - Remove from stock",
    MovementType.ADJUSTMENT: "ADJUSTMENT - Adjust stock",
}


def _movement_form_context(session: InventorySession) -> dict:
    # Selector options come from the cache only; the item list fragment does the fetching
    panel = session.item_list.cached_items()
    session.movement_form.sync_items(panel.data or [])
    return {
        "movement_form": session.movement_form,
        "items_error": panel.error,
        "movement_types": MOVEMENT_TYPE_LABELS,
    }


def _back_home() -> RedirectResponse:
    return RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)


def create_app(transport: httpx.AsyncBaseTransport | None = None, cache: QueryCache | None = None) -> FastAPI:
    """Builds the web client. transport/cache are swapped out in tests."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Inventory web client starting up...")
        app.state.session = InventorySession.open(transport=transport, cache=cache)
        yield # Application runs here
        logger.info("Inventory web client shutting down...")
        await app.state.session.close()

    app = FastAPI(
        title="Inventory Web Client",
        description="Create items, record stock movements and browse stock levels and history.",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health", tags=["Monitoring"], summary="Health Check")
    async def health_check():
        return {"status": "healthy"}

    # --- Pages ---

    @app.get("/", response_class=HTMLResponse, tags=["Pages"], summary="Inventory Page")
    async def index(request: Request):
        """Both forms plus a placeholder the item list is loaded into."""
        session: InventorySession = request.app.state.session
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "item_form": session.item_form,
                "notice": session.notice,
                "units": UNIT_LABELS,
                **_movement_form_context(session),
            },
        )

    @app.get("/fragments/movement-form", response_class=HTMLResponse, tags=["Pages"], summary="Movement Form")
    async def movement_form_fragment(request: Request):
        """Re-rendered once the item list fragment settled, so its selector matches the list."""
        session: InventorySession = request.app.state.session
        return templates.TemplateResponse(request, "_movement_form.html", _movement_form_context(session))

    @app.get("/fragments/items", response_class=HTMLResponse, tags=["Pages"], summary="Item List")
    async def item_list_fragment(request: Request):
        session: InventorySession = request.app.state.session
        panel = await session.item_list.load_items()
        return templates.TemplateResponse(
            request,
            "_item_list.html",
            {"panel": panel, "expanded_item_id": session.item_list.expanded_item_id},
        )

    @app.get("/fragments/items/{item_id}/movements", response_class=HTMLResponse, tags=["Pages"], summary="Movement History")
    async def movement_history_fragment(request: Request, item_id: int):
        session: InventorySession = request.app.state.session
        panel = await session.item_list.load_movements(item_id)
        return templates.TemplateResponse(request, "_item_detail.html", {"panel": panel, "item_id": item_id})

    # --- Form posts ---

    @app.post("/items", tags=["Forms"], summary="Submit Item Form")
    async def submit_item_form(
        request: Request,
        name: str = Form(""),
        sku: str = Form(""),
        unit: Unit = Form(Unit.PCS),
    ):
        form = request.app.state.session.item_form
        if form.edit("name", name) and form.edit("sku", sku) and form.edit("unit", unit):
            await form.submit()
        return _back_home()

    @app.post("/movements", tags=["Forms"], summary="Submit Movement Form")
    async def submit_movement_form(
        request: Request,
        item_id: str = Form("0"), # Disabled selects send nothing
        quantity: str = Form(""),
        movement_type: MovementType = Form(MovementType.IN),
    ):
        form = request.app.state.session.movement_form
        try:
            selected = int(item_id)
        except ValueError:
            selected = 0
        if form.edit("item_id", selected) and form.edit("quantity", quantity) and form.edit("movement_type", movement_type):
            await form.submit()
        return _back_home()

    @app.post("/items/{item_id}/toggle", tags=["Forms"], summary="Expand or Collapse History")
    async def toggle_history(request: Request, item_id: int):
        request.app.state.session.item_list.toggle(item_id)
        return _back_home()

    @app.post("/notices/ack", tags=["Forms"], summary="Acknowledge Notice")
    async def acknowledge_notice(request: Request):
        request.app.state.session.acknowledge()
        return _back_home()

    return app


app = create_app()


def run():
    uvicorn.run("inventory_web.main:app", host=config.APP_HOST, port=config.APP_PORT)


if __name__ == "__main__":
    run()
