"""Packet pipeline constants shared across the SDK.

These values are referenced by the job queue, worker pool, and queue monitor.
Every tunable can be overridden via environment variables so that
deployments can adjust retry and alerting behaviour without code changes.
"""

import os

# --- Retry policy ---
# A job that fails this many times is escalated instead of retried.
# Overridable via QUEUE_MAX_ATTEMPTS env var.
MAX_ATTEMPTS = int(os.getenv("QUEUE_MAX_ATTEMPTS", "3"))

# Backoff after the n-th failure is min(BASE * FACTOR ** (n - 1), MAX).
RETRY_BASE_DELAY_SECONDS = float(os.getenv("QUEUE_RETRY_BASE_DELAY", "5"))
RETRY_BACKOFF_FACTOR = float(os.getenv("QUEUE_RETRY_BACKOFF_FACTOR", "2"))
RETRY_MAX_DELAY_SECONDS = float(os.getenv("QUEUE_RETRY_MAX_DELAY", "300"))

# --- Worker pool ---
# A single generation attempt that runs longer than this is failed with
# JobTimeoutError and goes through the normal retry policy.
JOB_TIMEOUT_SECONDS = float(os.getenv("QUEUE_JOB_TIMEOUT", "300"))
WORKER_COUNT = int(os.getenv("QUEUE_WORKER_COUNT", "2"))
WORKER_POLL_INTERVAL_SECONDS = float(os.getenv("QUEUE_POLL_INTERVAL", "1"))

# An ACTIVE job whose attempt started longer ago than this has lost its
# worker; the next claim fails it with JobTimeoutError.  Must exceed
# JOB_TIMEOUT_SECONDS so a live worker always times out first.
ACTIVE_LEASE_SECONDS = float(
    os.getenv("QUEUE_ACTIVE_LEASE", str(JOB_TIMEOUT_SECONDS * 2))
)

# --- Queue monitor thresholds ---
BACKLOG_WARNING = int(os.getenv("MONITOR_BACKLOG_WARNING", "50"))
BACKLOG_CRITICAL = int(os.getenv("MONITOR_BACKLOG_CRITICAL", "100"))
FAILURE_RATE_WARNING = float(os.getenv("MONITOR_FAILURE_RATE_WARNING", "0.10"))
FAILURE_RATE_CRITICAL = float(os.getenv("MONITOR_FAILURE_RATE_CRITICAL", "0.20"))
FAILURE_WINDOW_SECONDS = float(os.getenv("MONITOR_FAILURE_WINDOW", "3600"))
STALL_GRACE_SECONDS = float(os.getenv("MONITOR_STALL_GRACE", "300"))
MONITOR_INTERVAL_SECONDS = float(os.getenv("MONITOR_INTERVAL", "60"))

# --- Intake ---
# Debounce interval for progress auto-save (seconds).
AUTOSAVE_INTERVAL_SECONDS = float(os.getenv("AUTOSAVE_INTERVAL", "30"))

# Human-readable packet names for notifications and exports.
PACKET_NAMES: dict[str, str] = {
    "INTRO": "Welcome Packet",
    "NUTRITION": "Nutrition Plan",
    "WORKOUT": "Workout Program",
    "PERFORMANCE": "Performance Plan",
    "YOUTH": "Youth Training Guide",
    "WELLNESS": "Wellness Guide",
    "RECOVERY": "Recovery Plan",
}

# What happens to answers for questions hidden at submission time:
# "retain" keeps them on the snapshot (never validated, reachable only by
# explicit {{responses.<id>}} placeholders); "purge" drops them.
HIDDEN_ANSWER_POLICY = os.getenv("HIDDEN_ANSWER_POLICY", "retain")
