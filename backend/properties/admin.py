from django.contrib import admin

from .models import BookingPeriod, Property


class BookingPeriodInline(admin.TabularInline):
    model = BookingPeriod
    extra = 0
    fields = ("start_date", "end_date", "is_open", "standard_nightly_price", "max_guests")
    readonly_fields = fields
    can_delete = False


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "price_per_night", "max_guests", "is_active")
    search_fields = ("title",)
    inlines = [BookingPeriodInline]
