"""Prometheus metrics for ledger writes, withdrawals, accrual runs and referral rewards"""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_transaction_counter = Counter(
    "ledger_transactions_total",
    "Transactions appended to the ledger",
    ["kind"],  # credit_deposit | credit_referral | debit_withdrawal | debit_purchase
)

# Withdrawal metrics
withdrawal_request_counter = Counter(
    "withdrawal_requests_total",
    "Withdrawal submissions by outcome",
    ["outcome"],  # accepted | <rejection code>
)

withdrawal_settlement_counter = Counter(
    "withdrawal_settlements_total",
    "Admin settlement decisions on withdrawal requests",
    ["status"],  # approved | completed | rejected
)

# Accrual metrics
accrual_grant_counter = Counter(
    "accrual_grants_total",
    "Per-investment accrual outcomes",
    ["outcome"],  # granted | skipped | duplicate | failed
)

accrual_run_duration_histogram = Histogram(
    "accrual_run_duration_seconds",
    "Wall time of a full accrual pass",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# Referral metrics
referral_reward_counter = Counter(
    "referral_rewards_total",
    "One-time referral rewards granted",
)

# Collaborator metrics
collaborator_failure_counter = Counter(
    "collaborator_failures_total",
    "Failed calls to the auth and payout-method services",
    ["collaborator"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_append(kind: str) -> None:
    ledger_transaction_counter.labels(kind=kind).inc()


def record_withdrawal(outcome: str) -> None:
    """Record a submission outcome: 'accepted' or the rule code that refused it"""
    withdrawal_request_counter.labels(outcome=outcome).inc()


def record_accrual_summary(granted: int, skipped: int, duplicates: int, failed: int) -> None:
    """Fold an end-of-run summary into the per-outcome counter"""
    for outcome, count in (
        ("granted", granted),
        ("skipped", skipped),
        ("duplicate", duplicates),
        ("failed", failed),
    ):
        if count:
            accrual_grant_counter.labels(outcome=outcome).inc(count)
