from django.contrib import admin

from .models import Cancellation, CreditVoucher, Payment, Refund, RefundRequest


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    fields = ("source", "status", "amount_cents", "gateway_refund_id", "applied_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "provider", "status", "amount_cents", "refunded_cents")
    list_filter = ("provider", "status")
    search_fields = ("gateway_session_id", "gateway_payment_intent_id")
    inlines = [RefundInline]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "source", "status", "amount_cents", "applied_at")
    list_filter = ("source", "status")
    search_fields = ("gateway_refund_id",)
    readonly_fields = ("applied_at", "customer_notified_at")


admin.site.register(Cancellation)
admin.site.register(RefundRequest)
admin.site.register(CreditVoucher)
