"""Stripe webhook API routes"""
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from billing.db.session import get_db
from billing.services.webhook_dispatcher import WebhookDispatcher, build_dispatcher

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


def get_webhook_dispatcher(db: Session = Depends(get_db)) -> WebhookDispatcher:
    """Dependency: dispatcher bound to the request's database session"""
    return build_dispatcher(db)


@router.post("/payments")
async def stripe_webhook(request: Request, dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher)):
    """Handle Stripe webhook events

    Note: This route must be excluded from any global JSON parsing middleware
    to ensure the request body remains as raw bytes for signature verification.
    """
    # Read body as raw bytes (critical for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    result = await run_in_threadpool(dispatcher.handle, payload, sig_header)
    return JSONResponse(status_code=result.status_code, content=result.body)
