"""URL routing for property period administration."""

from django.urls import path

from .api import period_create, period_detail, property_periods

app_name = "properties"

urlpatterns = [
    path("<int:property_id>/periods/", property_periods, name="property_periods"),
    path("periods/", period_create, name="period_create"),
    path("periods/<int:period_id>/", period_detail, name="period_detail"),
]
