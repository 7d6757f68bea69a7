# ===============================================================================
# TEST FACTORIES FOR TARIFFS, METERING AND BILLING
# ===============================================================================
from decimal import Decimal

from apps.metering.models import BulkMeter, IndividualCustomer
from apps.tariffs.models import TariffRecord

DOMESTIC_TARIFF = {
    "customer_type": "Domestic",
    "tiers": [{"limit": 5, "rate": "5"}, {"limit": 14, "rate": "8"}, {"limit": "Infinity", "rate": "10"}],
    "sewerage_tiers": [{"limit": 5, "rate": "0.5"}, {"limit": "Infinity", "rate": "1.0"}],
    "maintenance_percentage": Decimal("0.01"),
    "sanitation_percentage": Decimal("0.07"),
    "meter_rent_prices": {"0.5": "37", "0.75": "45"},
    "vat_rate": Decimal("0.15"),
    "domestic_vat_threshold_m3": Decimal("15"),
}

NON_DOMESTIC_TARIFF = {
    "customer_type": "Non-domestic",
    "tiers": [{"limit": 5, "rate": "6"}, {"limit": 14, "rate": "9"}, {"limit": "Infinity", "rate": "12"}],
    "sewerage_tiers": [{"limit": "Infinity", "rate": "1"}],
    "maintenance_percentage": Decimal("0.01"),
    "sanitation_percentage": Decimal("0.10"),
    "meter_rent_prices": {"1": "50", "2": "80"},
    "vat_rate": Decimal("0.15"),
}


def tariff_row(template: dict, year: int = 2025, **overrides) -> dict:
    """Plain mapping in the shape of a TariffRecord row."""
    return {**template, "year": year, **overrides}


def create_tariff(template: dict, year: int = 2025, **overrides) -> TariffRecord:
    return TariffRecord.objects.create(**tariff_row(template, year, **overrides))


def create_standard_tariffs(year: int = 2025) -> list[TariffRecord]:
    """Domestic and Non-domestic tariffs for ``year``."""
    return [create_tariff(DOMESTIC_TARIFF, year), create_tariff(NON_DOMESTIC_TARIFF, year)]


def create_bulk_meter(key: str = "BM-001", **overrides) -> BulkMeter:
    """Non-domestic bulk meter reading 1000 -> 1020 in 2025-11."""
    fields = {
        "name": f"Bulk meter {key}",
        "customer_type": "Non-domestic",
        "sewerage_connection": "Yes",
        "meter_size": Decimal("2"),
        "previous_reading": Decimal("1000"),
        "current_reading": Decimal("1020"),
        "billing_month": "2025-11",
        "location": "Block A",
    }
    fields.update(overrides)
    return BulkMeter.objects.create(customer_key_number=key, **fields)


def create_customer(
    key: str, bulk_meter: BulkMeter | None, previous: str, current: str, **overrides
) -> IndividualCustomer:
    fields = {
        "name": f"Customer {key}",
        "customer_type": "Domestic",
        "meter_size": Decimal("0.75"),
        "previous_reading": Decimal(previous),
        "current_reading": Decimal(current),
        "billing_month": "2025-11",
        "assigned_bulk_meter": bulk_meter,
    }
    fields.update(overrides)
    return IndividualCustomer.objects.create(customer_key_number=key, **fields)


def create_metered_block(key: str = "BM-001", **bulk_overrides) -> BulkMeter:
    """Bulk meter using 20 m3 with two customers using 10 and 15 m3."""
    bulk_meter = create_bulk_meter(key, **bulk_overrides)
    create_customer(f"{key}-C1", bulk_meter, "100", "110")
    create_customer(f"{key}-C2", bulk_meter, "200", "215")
    bulk_meter.refresh_from_db()
    return bulk_meter
