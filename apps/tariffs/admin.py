from django.contrib import admin

from .models import TariffRecord


@admin.register(TariffRecord)
class TariffRecordAdmin(admin.ModelAdmin):
    list_display = ("customer_type", "year", "vat_rate", "domestic_vat_threshold_m3", "updated_at")
    list_filter = ("customer_type", "year")
    ordering = ("-year", "customer_type")
