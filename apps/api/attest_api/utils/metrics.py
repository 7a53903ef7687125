"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Intake gate metrics
intake_requests = Counter(
    "attest_intake_requests_total",
    "Total attested PDF intake requests",
    ["outcome"],
)

intake_duration = Histogram(
    "attest_intake_duration_seconds",
    "Intake request duration",
)

# Identifier metrics
uid_collisions = Counter(
    "attest_uid_collisions_total",
    "Generated UID candidates that already existed",
)

uid_exhausted = Counter(
    "attest_uid_retries_exhausted_total",
    "UID generations that ran out of retries",
)

# Ledger metrics
ledger_compensations = Counter(
    "attest_ledger_compensations_total",
    "Uncommitted ledger rows discarded after a failed storage hand-off",
)

file_status_updates = Counter(
    "attest_file_status_updates_total",
    "Storage events applied to ledger records",
    ["status", "matched"],
)

# Interceptor metrics
interceptor_decisions = Counter(
    "attest_interceptor_decisions_total",
    "Upload interceptor decisions",
    ["ingress", "decision"],
)
