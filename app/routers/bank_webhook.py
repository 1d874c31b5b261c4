import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from app.core import config
from app.core.database import get_db
from app.services.bank_webhook import process_bank_notification

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, "
        "x-signature, signature, x-webhook-signature, x-hmac-signature"
    ),
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@router.api_route(
    "/bank-transfer",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def bank_transfer_webhook(request: Request, db: Session = Depends(get_db)):
    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=CORS_HEADERS)
    if request.method != "POST":
        return JSONResponse(
            {"ok": False, "error": "method_not_allowed"},
            status_code=405,
            headers=CORS_HEADERS,
        )

    raw_body = await request.body()
    result = process_bank_notification(
        db,
        raw_body=raw_body,
        headers=request.headers,
        secret=config.BANK_WEBHOOK_SECRET,
        lookback_limit=config.BANK_WEBHOOK_LOOKBACK_LIMIT,
    )
    logger.info(
        "Bank webhook handled",
        extra={"status_code": result.status_code},
    )
    return JSONResponse(result.body, status_code=result.status_code, headers=CORS_HEADERS)
