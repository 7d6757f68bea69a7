from django.contrib import admin

from .models import BulkMeter, IndividualCustomer


@admin.register(BulkMeter)
class BulkMeterAdmin(admin.ModelAdmin):
    list_display = (
        "customer_key_number",
        "name",
        "customer_type",
        "billing_month",
        "previous_reading",
        "current_reading",
        "difference_usage",
        "outstanding_balance",
        "payment_status",
    )
    list_filter = ("status", "customer_type", "payment_status")
    search_fields = ("customer_key_number", "name", "meter_number")
    readonly_fields = ("bulk_usage", "total_bulk_bill", "difference_usage", "difference_bill", "version")


@admin.register(IndividualCustomer)
class IndividualCustomerAdmin(admin.ModelAdmin):
    list_display = (
        "customer_key_number",
        "name",
        "customer_type",
        "assigned_bulk_meter",
        "previous_reading",
        "current_reading",
        "payment_status",
    )
    list_filter = ("status", "customer_type", "payment_status")
    search_fields = ("customer_key_number", "name", "meter_number")
    readonly_fields = ("version",)
