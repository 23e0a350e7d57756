"""Prometheus metrics for the application"""
from prometheus_client import Counter, Histogram, REGISTRY

# Webhook metrics
try:
    webhook_events_counter = Counter(
        'billing_webhook_events_total',
        'Total number of webhook deliveries by event type and result',
        ['event_type', 'result']
    )
except ValueError:
    webhook_events_counter = REGISTRY._names_to_collectors.get('billing_webhook_events_total')

try:
    webhook_claim_conflicts_counter = Counter(
        'billing_webhook_claim_conflicts_total',
        'Deliveries that lost the claim race to a concurrent request'
    )
except ValueError:
    webhook_claim_conflicts_counter = REGISTRY._names_to_collectors.get('billing_webhook_claim_conflicts_total')

try:
    webhook_processing_histogram = Histogram(
        'billing_webhook_processing_seconds',
        'Time spent dispatching a webhook delivery',
        ['event_type']
    )
except ValueError:
    webhook_processing_histogram = REGISTRY._names_to_collectors.get('billing_webhook_processing_seconds')

# Ledger metrics
try:
    credits_granted_counter = Counter(
        'billing_credits_granted_total',
        'Total number of credits granted',
        ['transaction_type']
    )
except ValueError:
    credits_granted_counter = REGISTRY._names_to_collectors.get('billing_credits_granted_total')

try:
    credits_clawed_back_counter = Counter(
        'billing_credits_clawed_back_total',
        'Total number of credits clawed back after refunds'
    )
except ValueError:
    credits_clawed_back_counter = REGISTRY._names_to_collectors.get('billing_credits_clawed_back_total')
