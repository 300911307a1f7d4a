"""Demo FastAPI application with request retry capture.

The payments endpoint answers 503 while the file ``payments.down`` exists.
Requests that fail this way are captured and can be replayed later.

Run with: python demo_app.py
Then:
    touch payments.down
    curl -X POST localhost:8000/api/payments -H 'content-type: application/json' \
        -d '{"amount": 1200, "currency": "EUR"}'
    rm payments.down
    REQUEST_RETRY_APP=demo_app:app request-retry process --tag payments
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from request_retry import OutcomeNotifier, RetryFailed, retry
from request_retry.adapters.asgi import ASGIRetryMiddleware
from request_retry.config import RetryConfig
from request_retry.files import build_blob_storage
from request_retry.observability.logging import configure_logging, get_logger
from request_retry.storage import build_store

OUTAGE_FLAG = Path("payments.down")

config = RetryConfig.from_env()
configure_logging(config.log_level, json_output=config.json_logs)
logger = get_logger("demo_app")

store = build_store(config)
notifier = OutcomeNotifier()


@notifier.subscribe
def log_failure(event):
    if isinstance(event, RetryFailed):
        logger.warning("demo.retry_gave_up", retry_id=event.record.id, reason=event.reason)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await store.create_schema()
    yield
    await store.dispose()


app = FastAPI(
    title="Request Retry Demo",
    description="Demo API whose failed requests are captured for replay",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    ASGIRetryMiddleware,
    store=store,
    blobs=build_blob_storage(config),
    config=config,
    notifier=notifier,
)


class PaymentRequest(BaseModel):
    amount: int
    currency: str = "USD"
    description: Optional[str] = None


def payments_unavailable() -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": "payment provider unavailable"})


@app.get("/")
async def root():
    """Root endpoint - returns API info."""
    return {
        "name": "Request Retry Demo",
        "version": "0.1.0",
        "endpoints": {
            "POST /api/payments": "Create a payment (503 while payments.down exists)",
            "POST /api/receipts": "Upload a receipt (503 while payments.down exists)",
        },
        "usage": "REQUEST_RETRY_APP=demo_app:app request-retry process",
    }


@app.post("/api/payments")
@retry(5, tags=["payments"])
async def create_payment(payment: PaymentRequest):
    """Create a payment, failing with 503 during an outage."""
    if OUTAGE_FLAG.exists():
        return payments_unavailable()

    return {
        "id": f"pay_{int(datetime.now(UTC).timestamp() * 1000)}",
        "status": "success",
        "amount": payment.amount,
        "currency": payment.currency,
    }


@app.post("/api/receipts")
@retry(tags=["payments", "receipts"])
async def upload_receipt(payment_id: str = Form(...), receipt: UploadFile = File(...)):
    """Attach a receipt to a payment. Uploaded files are replayed too."""
    if OUTAGE_FLAG.exists():
        return payments_unavailable()

    content = await receipt.read()
    return {"payment_id": payment_id, "filename": receipt.filename, "size": len(content)}


if __name__ == "__main__":
    print("=" * 60)
    print("Request Retry Demo Server")
    print("=" * 60)
    print("\nStarting server at http://localhost:8000")
    print(f"\nCreate {OUTAGE_FLAG} to simulate an outage, remove it and run")
    print("  REQUEST_RETRY_APP=demo_app:app request-retry process")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
