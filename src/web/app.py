"""
Web surface of the marketplace.

Hosts the payment checkout page, receives the gateway's payment
confirmations and serves the public listing feed. Everything else happens in
the Telegram bot.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import UUID

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import HTMLResponse
from pydantic import AliasChoices, BaseModel, Field

from ..config import Config
from ..models.order import OrderStatus
from ..models.product import Product
from ..services.notification_service import NotificationService
from ..services.order_service import OrderService
from ..services.product_service import ProductService
from .errors import setup_error_handlers
from .pages import render_checkout_page, render_message_page

logger = logging.getLogger(__name__)


@dataclass
class WebState:
    """Services shared by the routes"""
    order_service: OrderService
    product_service: ProductService
    notifications: Optional[NotificationService] = None
    razorpay_key_id: str = ""
    currency: str = "INR"


class PaymentConfirmation(BaseModel):
    order_id: str = Field(min_length=1, validation_alias=AliasChoices("order_id", "razorpay_order_id"))
    payment_id: str = Field(min_length=1, validation_alias=AliasChoices("payment_id", "razorpay_payment_id"))
    signature: str = Field(min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature"))


class PaymentFailure(BaseModel):
    order_id: str = Field(min_length=1, validation_alias=AliasChoices("order_id", "razorpay_order_id"))


def listing_payload(product: Product) -> Dict[str, Any]:
    """Public view of a listed product"""
    return {
        "product_id": str(product.product_id),
        "images": product.images,
        "size": product.size,
        **product.listed_product.model_dump(mode="json"),
    }


def get_state(request: Request) -> WebState:
    return request.app.state.web_state


def create_app(state: WebState) -> FastAPI:
    """Create the FastAPI application around already constructed services"""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Web app starting")
        yield
        logger.info("Web app shutting down")

    app = FastAPI(title="ReTag marketplace", lifespan=lifespan)
    app.state.web_state = state
    setup_error_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/listings")
    async def list_listings(request: Request):
        products = await get_state(request).product_service.list_listed()
        return {"success": True, "listings": [listing_payload(p) for p in products]}

    @app.get("/listings/{product_id}")
    async def get_listing(product_id: UUID, request: Request):
        product = await get_state(request).product_service.get_listing(product_id)
        return {"success": True, "listing": listing_payload(product)}

    @app.get("/checkout/{razorpay_order_id}", response_class=HTMLResponse)
    async def checkout_page(razorpay_order_id: str, request: Request):
        state = get_state(request)
        order = await state.order_service.get_order_by_gateway_ref(razorpay_order_id)
        if order.status == OrderStatus.PAID:
            return HTMLResponse(render_message_page(
                "Already paid", "This order has been paid. You can return to Telegram."
            ))
        return HTMLResponse(render_checkout_page(order, state.razorpay_key_id, state.currency))

    @app.post("/payments/verify")
    async def verify_payment(body: PaymentConfirmation, request: Request,
                             background_tasks: BackgroundTasks):
        state = get_state(request)
        result = await state.order_service.verify_payment(
            body.order_id, body.payment_id, body.signature
        )
        if state.notifications is not None:
            background_tasks.add_task(state.notifications.payment_settled, result)
        return result.to_dict()

    @app.post("/payments/failed")
    async def payment_failed(body: PaymentFailure, request: Request):
        # unsigned report: a later valid confirmation still settles the order
        client = request.client.host if request.client else "unknown"
        logger.info(f"Payment failure for {body.order_id} reported by {client}")
        order = await get_state(request).order_service.mark_payment_failed(body.order_id)
        return {"success": True, "order_id": str(order.order_id), "status": order.status.value}

    return app


class WebServer:
    """Runs the web app with uvicorn inside the bot's event loop"""

    def __init__(self, app: FastAPI, host: Optional[str] = None, port: Optional[int] = None):
        config = uvicorn.Config(
            app,
            host=host or Config.WEB_HOST,
            port=port or Config.WEB_PORT,
            log_config=None,  # keep the logging set up by setup_logging()
        )
        self.server = uvicorn.Server(config)
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        self._task = asyncio.create_task(self.server.serve())
        logger.info(f"Web app listening on {self.server.config.host}:{self.server.config.port}")

    async def stop(self):
        if self._task is None:
            return
        self.server.should_exit = True
        await self._task
        self._task = None
