# ===============================================================================
# BILL CALCULATOR TESTS - FULL BILL COMPOSITION
# ===============================================================================

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.tariffs.repository import TariffScheduleRepository
from apps.tariffs.services import BillCalculator, TariffNotFound, calculate_from_schedule, quantize_money
from tests.factories.hydrobill import DOMESTIC_TARIFF, NON_DOMESTIC_TARIFF, tariff_row


class StaticTariffStore:
    def __init__(self, rows: list[dict]) -> None:
        self.rows = rows

    def load_all(self) -> list[dict]:
        return self.rows


class BillCalculatorTestCase(SimpleTestCase):
    """Composition of band, surcharge, rent and VAT components"""

    def setUp(self) -> None:
        repository = TariffScheduleRepository(
            StaticTariffStore([tariff_row(DOMESTIC_TARIFF), tariff_row(NON_DOMESTIC_TARIFF)])
        )
        self.calculator = BillCalculator(repository)

    def test_domestic_bill_with_sewerage(self) -> None:
        """25 m3 domestic with sewerage, 3/4 inch meter"""
        bill = self.calculator.calculate(Decimal("25"), "Domestic", "Yes", Decimal("0.75"), "2025-11")

        self.assertEqual(bill.base_water_charge, Decimal("207.00"))
        self.assertEqual(bill.maintenance_fee, Decimal("2.07"))
        self.assertEqual(bill.sanitation_fee, Decimal("14.49"))
        self.assertEqual(bill.sewerage_charge, Decimal("22.50"))
        self.assertEqual(bill.meter_rent, Decimal("45.00"))
        self.assertEqual(bill.vat_amount, Decimal("36.91"))
        self.assertEqual(bill.total_bill, Decimal("327.97"))
        self.assertTrue(bill.tariff_found)
        self.assertEqual(len(bill.water_tier_breakdown), 3)
        self.assertEqual(len(bill.sewerage_tier_breakdown), 2)

    def test_vat_threshold_is_inclusive_exemption(self) -> None:
        """15 m3 domestic pays no VAT; 16 m3 pays VAT on all taxable components"""
        at_threshold = self.calculator.calculate(Decimal("15"), "Domestic", "No", Decimal("0.75"), "2025-11")
        above = self.calculator.calculate(Decimal("16"), "Domestic", "No", Decimal("0.75"), "2025-11")

        self.assertEqual(at_threshold.vat_amount, Decimal("0"))
        self.assertEqual(at_threshold.total_bill, Decimal("160.56"))
        self.assertEqual(above.vat_amount, Decimal("18.95"))
        self.assertEqual(above.total_bill, Decimal("190.31"))

    def test_zero_usage_costs_only_meter_rent(self) -> None:
        bill = self.calculator.calculate(Decimal("0"), "Domestic", "Yes", Decimal("0.75"), "2025-11")

        self.assertEqual(bill.base_water_charge, Decimal("0"))
        self.assertEqual(bill.sewerage_charge, Decimal("0"))
        self.assertEqual(bill.vat_amount, Decimal("0"))
        self.assertEqual(bill.total_bill, Decimal("45.00"))

    def test_negative_usage_is_clamped(self) -> None:
        negative = self.calculator.calculate(Decimal("-4"), "Domestic", "No", Decimal("0.75"), "2025-11")
        zero = self.calculator.calculate(Decimal("0"), "Domestic", "No", Decimal("0.75"), "2025-11")

        self.assertEqual(negative, zero)

    def test_total_is_sum_of_rounded_components(self) -> None:
        bill = self.calculator.calculate(Decimal("17.37"), "Non-domestic", "Yes", Decimal("1"), "2025-03")
        components = (
            bill.base_water_charge,
            bill.maintenance_fee,
            bill.sanitation_fee,
            bill.sewerage_charge,
            bill.meter_rent,
            bill.vat_amount,
        )

        self.assertEqual(bill.total_bill, sum(components, Decimal("0")))
        for component in components:
            self.assertEqual(component, quantize_money(component))

    def test_repeated_calls_are_identical(self) -> None:
        first = self.calculator.calculate(Decimal("12"), "Non-domestic", "No", Decimal("1"), "2025-01")
        second = self.calculator.calculate(Decimal("12"), "Non-domestic", "No", Decimal("1"), "2025-01")

        self.assertEqual(first, second)

    def test_missing_tariff_yields_zero_bill(self) -> None:
        """No tariff for the year: zero bill, flagged, with a warning"""
        with self.assertLogs("apps.tariffs.services", level="WARNING"):
            bill = self.calculator.calculate(Decimal("25"), "Domestic", "Yes", Decimal("0.75"), "2030-01")

        self.assertFalse(bill.tariff_found)
        self.assertEqual(bill.total_bill, Decimal("0"))
        self.assertEqual(bill.meter_rent, Decimal("0"))

    def test_invalid_month_yields_zero_bill(self) -> None:
        with self.assertLogs("apps.tariffs.services", level="WARNING"):
            bill = self.calculator.calculate(Decimal("25"), "Domestic", "Yes", Decimal("0.75"), "2025-13")

        self.assertFalse(bill.tariff_found)

    def test_resolve_schedule_raises_typed_errors(self) -> None:
        with self.assertRaises(TariffNotFound):
            self.calculator.resolve_schedule("rental domestic", "2025-11")
        with self.assertRaises(ValidationError):
            self.calculator.resolve_schedule("Domestic", "November")

    def test_as_dict_is_json_ready(self) -> None:
        bill = self.calculator.calculate(Decimal("25"), "Domestic", "Yes", Decimal("0.75"), "2025-11")
        data = bill.as_dict()

        self.assertEqual(data["total_bill"], "327.97")
        self.assertEqual(data["water_tier_breakdown"][0]["rate"], "5")
        self.assertNotIn("water_tier_breakdown", bill.charge_breakdown())


class CalculateFromScheduleTestCase(SimpleTestCase):
    def test_bill_without_rent_bracket(self) -> None:
        """An empty meter rent table adds no rent"""
        repository = TariffScheduleRepository(StaticTariffStore([tariff_row(DOMESTIC_TARIFF, meter_rent_prices={})]))
        schedule = repository.get("Domestic", 2025)

        bill = calculate_from_schedule(schedule, Decimal("3"), "Domestic", "No", Decimal("0.75"))

        self.assertEqual(bill.meter_rent, Decimal("0"))
        self.assertEqual(bill.total_bill, Decimal("16.20"))
