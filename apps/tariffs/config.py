"""
Tariff configuration for HydroBill Platform.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_non_negative_decimal(setting_name: str, default: str) -> Decimal:
    """Get a non-negative decimal from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        logger.warning(f"⚠️ [Tariffs] Invalid {setting_name}={value!r}, using {default}")
        result = Decimal(default)
    if not result.is_finite() or result < 0:
        return Decimal(default)
    return result


# ===============================================================================
# VAT
# ===============================================================================


def get_default_domestic_vat_threshold() -> Decimal:
    """VAT-exempt usage ceiling (m3) for domestic customers when a tariff row has none."""
    return _get_non_negative_decimal("TARIFF_DEFAULT_DOMESTIC_VAT_THRESHOLD_M3", "15")
