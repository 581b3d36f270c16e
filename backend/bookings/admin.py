from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "property", "user", "start_date", "end_date", "status", "total_price")
    list_filter = ("status",)
    search_fields = ("guest_name", "guest_email", "user__email")
    readonly_fields = ("price_breakdown", "weekly_discount_applied_bps", "created_at", "updated_at")
