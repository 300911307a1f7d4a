"""Shared application fixtures for end-to-end scenarios.

The scenario app is a FastAPI application with ASGIRetryMiddleware whose
routes answer with whatever status the ``backend`` fixture dictates, so a
test can fail requests first and let their replays succeed later.
"""

from typing import Any

import httpx
import pytest
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from request_retry.adapters.asgi import ASGIRetryMiddleware
from request_retry.adapters.dispatch import ASGIDispatcher
from request_retry.core.processor import ReplayProcessor
from request_retry.routing import retry


class Backend:
    """Status each route answers with, and the calls it received."""

    def __init__(self) -> None:
        self.statuses: dict[str, int] = {}
        self.calls: list[dict[str, Any]] = []

    def fail(self, route: str, status: int = 500) -> None:
        self.statuses[route] = status

    def recover(self, route: str) -> None:
        self.statuses.pop(route, None)

    def respond(self, route: str, payload: Any, request: Request) -> Any:
        self.calls.append(
            {
                "route": route,
                "payload": payload,
                "marker": request.headers.get("x-retry-attempt"),
                "authorization": request.headers.get("authorization"),
            }
        )
        status = self.statuses.get(route, 200)
        if status == 200:
            return {"route": route, "payload": payload}
        return JSONResponse(status_code=status, content={"detail": f"{route} unavailable"})

    def calls_to(self, route: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["route"] == route]


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
def app(store, blobs, config, notifier, backend) -> FastAPI:
    """Create a FastAPI app with retry capture."""
    test_app = FastAPI()

    test_app.add_middleware(
        ASGIRetryMiddleware,
        store=store,
        blobs=blobs,
        config=config,
        notifier=notifier,
    )

    @test_app.post("/x")
    async def post_x(request: Request):
        return backend.respond("x", await request.json(), request)

    @test_app.post("/api/invoices")
    @retry(5, tags=["billing"])
    async def create_invoice(request: Request):
        return backend.respond("invoices", await request.json(), request)

    @test_app.post("/api/orders")
    async def create_order(request: Request):
        return backend.respond("orders", await request.json(), request)

    @test_app.post("/api/receipts")
    @retry(tags=["billing", "receipts"])
    async def upload_receipt(
        request: Request,
        payment_id: str = Form(...),
        receipt: UploadFile = File(...),
    ):
        payload = {
            "payment_id": payment_id,
            "filename": receipt.filename,
            "content": (await receipt.read()).decode(),
        }
        return backend.respond("receipts", payload, request)

    @test_app.post("/api/tenant-orders")
    async def create_tenant_order(request: Request, tenant: str):
        payload = {"tenant": tenant, "order": await request.json()}
        return backend.respond("tenant-orders", payload, request)

    @test_app.post("/api/batches")
    async def create_batch(request: Request, tenant: str):
        payload = {"tenant": tenant, "items": await request.json()}
        return backend.respond("batches", payload, request)

    @test_app.get("/api/search")
    async def search(request: Request, q: str):
        return backend.respond("search", {"q": q}, request)

    @test_app.post("/api/crash")
    async def crash(request: Request):
        backend.respond("crash", await request.json(), request)
        if "crash" in backend.statuses:
            raise RuntimeError("handler exploded")
        return {"route": "crash"}

    return test_app


@pytest.fixture
async def client(app):
    """HTTP client talking to the app in process."""
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def processor(app, store, blobs, config, notifier) -> ReplayProcessor:
    """Replay processor dispatching through the same app."""
    return ReplayProcessor(store, blobs, ASGIDispatcher(app), config=config, notifier=notifier)
