from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from savings_gateway.config import settings
from savings_gateway.database import Base, engine, SessionLocal
from savings_gateway.ledger import LedgerStore
from savings_gateway.logging import configure_logging, logger
from savings_gateway.routes import router
from savings_gateway.webhook import process_notification

configure_logging()

app = FastAPI(title="Savings Gateway")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", settings.app_base_url],
    allow_origin_regex=r"https://.*\.ngrok-free\.app",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "ngrok-skip-browser-warning"],
)

app.include_router(router)

Base.metadata.create_all(bind=engine)

logger.info(
    "gateway configured merchant_id=%s mode=%s app_base_url=%s",
    settings.merchant_id,
    "SANDBOX" if settings.sandbox else "LIVE",
    settings.app_base_url,
)


@app.get("/")
def health():
    return {
        "status": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": {
            "payfast": "Configured" if settings.merchant_id else "Not configured",
            "passphrase": "Configured" if settings.passphrase else "Not configured",
            "mode": "SANDBOX" if settings.sandbox else "LIVE",
            "appBaseUrl": settings.app_base_url,
        },
    }


@app.get("/ping")
def ping():
    return {"message": "pong"}


@app.post("/payfast/notify")
async def payfast_notify(request: Request):
    payload = await request.body()

    store = LedgerStore(SessionLocal)
    result = await run_in_threadpool(process_notification, payload, store, settings)

    return PlainTextResponse(result.message, status_code=result.status_code)


if __name__ == "__main__":
    uvicorn.run("savings_gateway.main:app", host="0.0.0.0", port=settings.port)
