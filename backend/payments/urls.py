from django.urls import path

from . import api

app_name = "payments"

urlpatterns = [
    path("cancellation-policy/", api.cancellation_policy, name="cancellation_policy"),
    path("cancel-preview/<int:booking_id>/", api.cancel_preview, name="cancel_preview"),
    path("cancel/<int:booking_id>/", api.cancel, name="cancel"),
    path("refund-status/<int:booking_id>/", api.refund_status, name="refund_status"),
    path(
        "refund-request/<int:booking_id>/",
        api.refund_request_create,
        name="refund_request_create",
    ),
    path(
        "admin/refund-requests/",
        api.AdminRefundRequestListView.as_view(),
        name="admin_refund_requests",
    ),
    path(
        "admin/refund-requests/<int:request_id>/approve/",
        api.admin_refund_request_approve,
        name="admin_refund_request_approve",
    ),
    path(
        "admin/refund-requests/<int:request_id>/reject/",
        api.admin_refund_request_reject,
        name="admin_refund_request_reject",
    ),
    path("admin/refunds/<int:refund_id>/retry/", api.admin_refund_retry, name="admin_refund_retry"),
    path("vouchers/", api.my_vouchers, name="vouchers"),
    path("admin/vouchers/", api.AdminVoucherListView.as_view(), name="admin_vouchers"),
    path("stripe/webhook/", api.stripe_webhook, name="stripe_webhook"),
    path("stripe/refund-webhook/", api.stripe_refund_webhook, name="stripe_refund_webhook"),
]
