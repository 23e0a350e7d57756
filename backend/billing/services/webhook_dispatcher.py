"""Webhook dispatcher - verify, claim, dispatch and finalize Stripe deliveries"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from billing.core.config import RuntimeMode, settings, webhook_secret_problem
from billing.core.logging import webhook_logger
from billing.core.metrics import (
    webhook_events_counter,
    webhook_claim_conflicts_counter,
    webhook_processing_histogram,
)
from billing.core.otel import get_tracer
from billing.models.webhook_event import WebhookEventStatus
from billing.services.stripe_service import verify_webhook_signature
from billing.services.webhook_event_service import (
    EventStoreError,
    claim_event,
    mark_event_completed,
    mark_event_failed,
    mark_event_unrecoverable,
)
from billing.services.webhook_handlers import (
    EVENT_HANDLERS,
    HandlerContext,
    HandlerResult,
    RetryableError,
    StripeEventType,
)

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MISCONFIGURED_SECRET_ERROR = "Misconfigured webhook secret - check environment variables"


@dataclass
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def _error(status_code: int, message: str) -> WebhookResponse:
    return WebhookResponse(status_code, {"error": message})


class WebhookDispatcher:
    """
    Processes one Stripe delivery end to end.

    Deliveries of the same event id may arrive concurrently or repeatedly;
    only the delivery that claims the event in the event store runs a handler,
    and the handler's result decides the event's terminal status:

        Outcome          -> completed, 200
        RetryableError   -> failed, 500 (Stripe retries)
        unknown type     -> unrecoverable, 200 with a warning
    """

    def __init__(
        self,
        db: Session,
        mode: RuntimeMode,
        webhook_secret: str,
        handlers: Optional[Dict[StripeEventType, Callable[[Any, HandlerContext], HandlerResult]]] = None
    ):
        self.db = db
        self.mode = mode
        self.webhook_secret = webhook_secret
        self.handlers = handlers if handlers is not None else EVENT_HANDLERS
        self.config_problem = webhook_secret_problem(webhook_secret, mode)

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResponse:
        if self.config_problem:
            webhook_logger.critical(f"Rejecting webhook: {self.config_problem}")
            return _error(500, MISCONFIGURED_SECRET_ERROR)

        event = self._parse_event(raw_body, signature_header)
        if isinstance(event, WebhookResponse):
            return event

        if self.mode == RuntimeMode.TEST and event.get("type") == "test" and not event.get("id"):
            return WebhookResponse(200, {"received": True, "test": True})

        event_id = event.get("id")
        event_type = event.get("type")
        data = event.get("data")
        if not event_id or not event_type or not isinstance(data, dict):
            webhook_logger.warning("Webhook payload is missing id, type or data")
            return _error(400, "Malformed event payload")

        started = time.monotonic()
        with tracer.start_as_current_span("stripe.webhook.dispatch") as span:
            span.set_attribute("stripe.event_id", event_id)
            span.set_attribute("stripe.event_type", event_type)
            response = self._process(event_id, event_type, data, event)
            span.set_attribute("http.status_code", response.status_code)
        webhook_processing_histogram.labels(event_type=event_type).observe(time.monotonic() - started)
        return response

    def _parse_event(self, raw_body: bytes, signature_header: Optional[str]):
        """The event as a dict, or the 400 response explaining why it was rejected"""
        if self.mode == RuntimeMode.PRODUCTION:
            if not signature_header:
                webhook_logger.warning("Webhook rejected: missing stripe-signature header")
                return _error(400, "Missing stripe-signature header")
            try:
                verify_webhook_signature(raw_body, signature_header, self.webhook_secret)
            except stripe.SignatureVerificationError as e:
                webhook_logger.warning(f"Webhook signature verification failed: {e}")
                return _error(400, f"Webhook signature verification failed: {e}")
            except UnicodeDecodeError:
                return _error(400, "Invalid payload encoding")

        try:
            event = json.loads(raw_body)
        except ValueError as e:
            webhook_logger.warning(f"Webhook payload is not valid JSON: {e}")
            return _error(400, "Invalid payload")
        if not isinstance(event, dict):
            return _error(400, "Invalid payload")
        return event

    def _process(self, event_id: str, event_type: str, data: Dict[str, Any], event: Dict[str, Any]) -> WebhookResponse:
        try:
            claim = claim_event(event_id, event_type, event, self.db)
        except EventStoreError as e:
            webhook_events_counter.labels(event_type=event_type, result="claim_error").inc()
            return _error(500, str(e))

        if not claim.is_new:
            status = claim.existing_status or WebhookEventStatus.PROCESSING
            webhook_logger.info(f"Skipping event {event_id} ({event_type}): already {status.value}")
            webhook_events_counter.labels(event_type=event_type, result="skipped").inc()
            if status == WebhookEventStatus.PROCESSING:
                webhook_claim_conflicts_counter.inc()
            return WebhookResponse(200, {
                "received": True,
                "skipped": True,
                "reason": f"Event already {status.value}",
            })

        known_type = StripeEventType.parse(event_type)
        handler = self.handlers.get(known_type) if known_type else None
        if handler is None:
            webhook_logger.warning(f"Unhandled event type: {event_type} (event {event_id}) marked unrecoverable")
            try:
                mark_event_unrecoverable(event_id, event_type, self.db)
            except EventStoreError as e:
                webhook_events_counter.labels(event_type=event_type, result="finalize_error").inc()
                return _error(500, str(e))
            webhook_events_counter.labels(event_type=event_type, result="unrecoverable").inc()
            return WebhookResponse(200, {"received": True, "warning": f"Unhandled event type: {event_type}"})

        ctx = HandlerContext(
            db=self.db,
            event_id=event_id,
            mode=self.mode,
            previous_attributes=data.get("previous_attributes"),
        )
        try:
            result = handler(data.get("object") or {}, ctx)
        except Exception as e:
            logger.error(f"Handler for {event_type} raised while processing {event_id}: {e}", exc_info=True)
            result = RetryableError(str(e) or e.__class__.__name__, e)

        if isinstance(result, RetryableError):
            self.db.rollback()
            mark_event_failed(event_id, result.message, self.db)
            webhook_events_counter.labels(event_type=event_type, result="failed").inc()
            return _error(500, result.message)

        try:
            mark_event_completed(event_id, self.db, outcome=result.describe())
        except EventStoreError as e:
            webhook_events_counter.labels(event_type=event_type, result="finalize_error").inc()
            return _error(500, str(e))

        webhook_logger.info(f"Processed event {event_id} ({event_type}): {result.status.value}")
        webhook_events_counter.labels(event_type=event_type, result=result.status.value).inc()
        return WebhookResponse(200, {"received": True})


def build_dispatcher(db: Session) -> WebhookDispatcher:
    """Dispatcher configured from application settings"""
    return WebhookDispatcher(
        db=db,
        mode=settings.RUNTIME_MODE,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
