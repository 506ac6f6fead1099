# dashboards/urls.py
from django.urls import path

from . import views

app_name = "dashboards"

urlpatterns = [
    path("summary/", views.ops_summary, name="ops_summary"),
    path("orders/", views.ops_orders, name="ops_orders"),
    path("orders/<uuid:order_id>/", views.ops_order_detail, name="ops_order_detail"),
    path("exports/ledger.csv", views.export_ledger, name="export_ledger"),
    path("exports/orders.csv", views.export_orders, name="export_orders"),
    path("exports/payouts.csv", views.export_payouts, name="export_payouts"),
]
