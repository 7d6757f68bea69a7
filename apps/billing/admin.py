"""
Django admin configuration for billing models.
Bills are append-only, so the admin is read-only.
"""

from typing import Any

from django.contrib import admin
from django.http import HttpRequest

from .models import Bill


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    """Closed billing cycles"""

    list_display = [
        "bill_number",
        "bulk_meter",
        "billing_month",
        "difference_usage",
        "total_amount_due",
        "total_payable",
        "payment_status",
        "due_date",
    ]
    list_filter = ["billing_month", "payment_status"]
    search_fields = ["bill_number", "bulk_meter__customer_key_number", "bulk_meter__name"]
    ordering = ["-billing_month", "bulk_meter"]
    date_hierarchy = "created_at"

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(self, request: HttpRequest, obj: Any = None) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj: Any = None) -> bool:
        return False
