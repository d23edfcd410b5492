"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Authorization metrics
api_key_authorizations_total = Counter(
    "api_key_authorizations_total",
    "API key authorization decisions",
    labelnames=["domain", "outcome"],  # outcome: allowed, demo, anonymous, or an error code
)

# Usage log metrics
usage_logged_total = Counter(
    "usage_logged_total",
    "Usage records written",
    labelnames=["status_code"],
)

usage_log_failures_total = Counter(
    "usage_log_failures_total",
    "Usage records that could not be written",
)

# Provisioning metrics
api_keys_provisioned_total = Counter(
    "api_keys_provisioned_total",
    "API keys minted for new subscriptions",
    labelnames=["tier"],
)

provisioning_reconciliation_required_total = Counter(
    "provisioning_reconciliation_required_total",
    "Stripe subscriptions created without a matching local API key",
)

# Billing webhook metrics
billing_events_total = Counter(
    "billing_events_total",
    "Stripe billing events received",
    labelnames=["event_type", "result"],  # result: applied, ignored, duplicate
)

billing_event_keys_updated_total = Counter(
    "billing_event_keys_updated_total",
    "API keys updated by billing events",
    labelnames=["kind"],
)
