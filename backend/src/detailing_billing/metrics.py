"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter, Histogram

# Webhook metrics
stripe_webhook_events_total = Counter(
    "stripe_webhook_events_total",
    "Total Stripe webhook events received",
    labelnames=["event_type", "outcome"],  # outcome: processed, duplicate, ignored, invalid, failed
)

stripe_webhook_processing_seconds = Histogram(
    "stripe_webhook_processing_seconds",
    "Time spent reconciling a verified Stripe event",
    labelnames=["event_type"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Tenant metrics
businesses_created_total = Counter(
    "businesses_created_total",
    "Total businesses created from checkout",
    labelnames=["plan"],
)

business_status_changes_total = Counter(
    "business_status_changes_total",
    "Total primary subscription status changes applied",
    labelnames=["status"],
)

# Add-on metrics
addon_status_transitions_total = Counter(
    "addon_status_transitions_total",
    "Total add-on status transitions",
    labelnames=["addon_key", "status"],
)

signup_lead_conversion_failures_total = Counter(
    "signup_lead_conversion_failures_total",
    "Signup leads that could not be marked converted",
)
