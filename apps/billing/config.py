"""
Centralized billing configuration for HydroBill Platform.

Values are read from Django settings on each call so they can be tuned per
environment and overridden in tests.
"""

import logging

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_positive_int(setting_name: str, default: int) -> int:
    """Get a positive integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ [Billing] Invalid {setting_name}={value!r}, using {default}")
        result = default
    return max(1, result)


def _get_non_negative_int(setting_name: str, default: int) -> int:
    """Get a non-negative integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ [Billing] Invalid {setting_name}={value!r}, using {default}")
        result = default
    return max(0, result)


# ===============================================================================
# DIFFERENCE USAGE
# ===============================================================================


def get_minimum_difference_usage() -> int:
    """Smallest difference usage (m3) billed to a bulk meter."""
    return _get_non_negative_int("BILLING_MINIMUM_DIFFERENCE_USAGE_M3", 3)


# ===============================================================================
# BILL TERMS
# ===============================================================================


def get_due_days() -> int:
    """Days from the end of the billing period to the bill due date."""
    return _get_non_negative_int("BILLING_DUE_DAYS", 15)


# ===============================================================================
# CYCLE CLOSURE
# ===============================================================================


def get_compensation_attempts() -> int:
    return _get_positive_int("BILLING_COMPENSATION_ATTEMPTS", 3)


def get_cycle_lock_timeout() -> int:
    """Lease (seconds) of the per-meter closure lock."""
    return _get_positive_int("BILLING_CYCLE_LOCK_TIMEOUT_SECONDS", 120)


def get_cycle_lock_wait() -> int:
    """Maximum seconds to wait for another closure of the same meter."""
    return _get_non_negative_int("BILLING_CYCLE_LOCK_WAIT_SECONDS", 10)


# ===============================================================================
# BATCH PROCESSING
# ===============================================================================


def get_batch_max_workers() -> int:
    return _get_positive_int("BILLING_BATCH_MAX_WORKERS", 1)
