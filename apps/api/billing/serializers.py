# ===============================================================================
# BILLING API SERIALIZERS 💧
# ===============================================================================

from decimal import Decimal
from typing import ClassVar

from rest_framework import serializers

from apps.billing.models import Bill
from apps.common.validators import validate_billing_month
from apps.tariffs.models import CustomerType, SewerageConnection

# ===============================================================================
# REQUEST SERIALIZERS 📥
# ===============================================================================


class BillCalculationRequestSerializer(serializers.Serializer):
    """Input for a one-off bill calculation"""

    usage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    customer_type = serializers.ChoiceField(choices=CustomerType.choices)
    sewerage_connection = serializers.ChoiceField(choices=SewerageConnection.choices, default=SewerageConnection.NO)
    meter_size = serializers.DecimalField(
        max_digits=6, decimal_places=3, min_value=Decimal("0"), default=Decimal("0.75")
    )
    billing_month = serializers.CharField(max_length=7, validators=[validate_billing_month])


class CloseCycleRequestSerializer(serializers.Serializer):
    carry_balance = serializers.BooleanField(default=True)


class RunCyclesRequestSerializer(serializers.Serializer):
    billing_month = serializers.CharField(
        max_length=7, required=False, allow_blank=True, validators=[validate_billing_month]
    )
    carry_balance = serializers.BooleanField(default=True)
    max_workers = serializers.IntegerField(required=False, min_value=1, max_value=32)


# ===============================================================================
# BILL SERIALIZERS 📄
# ===============================================================================


class BillSerializer(serializers.ModelSerializer):
    """Persisted bill with its charge breakdown"""

    bulk_meter = serializers.CharField(source="bulk_meter_id", read_only=True)

    class Meta:
        model = Bill
        fields: ClassVar = [
            "bill_number",
            "bulk_meter",
            "billing_month",
            "period_start",
            "period_end",
            "due_date",
            "previous_reading",
            "current_reading",
            "usage_m3",
            "individual_usage_m3",
            "difference_usage",
            "base_water_charge",
            "maintenance_fee",
            "sanitation_fee",
            "sewerage_charge",
            "meter_rent",
            "vat_amount",
            "total_amount_due",
            "balance_carried_forward",
            "total_payable",
            "payment_status",
            "notes",
            "meta",
            "created_at",
        ]
        read_only_fields = fields
