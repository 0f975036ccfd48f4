from django.urls import path
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register("lots", views.ProductionAllotmentViewSet)
router.register("shifts", views.ShiftViewSet)
router.register("assignments", views.RollAssignmentViewSet)
router.register("roll-confirmations", views.RollConfirmationViewSet)
router.register("locations", views.LocationViewSet)
router.register("storage-captures", views.StorageCaptureViewSet)
router.register("dispatch-plannings", views.DispatchPlanningViewSet)
router.register("alerts", views.ManualActionAlertViewSet)

urlpatterns = router.urls + [
    path("fg/scan/", views.fg_scan, name="fg-scan"),
    path("fg/confirm/", views.fg_confirm, name="fg-confirm"),
    path("fg/reset/", views.fg_reset, name="fg-reset"),
    path("fg/reprint/", views.fg_reprint, name="fg-reprint"),
    path("dispatch/plan/", views.dispatch_plan, name="dispatch-plan"),
    path("dispatch/<str:order_id>/open/", views.dispatch_open, name="dispatch-open"),
    path("dispatch/<str:order_id>/select-lot/", views.dispatch_select_lot, name="dispatch-select-lot"),
    path("dispatch/<str:order_id>/scan/", views.dispatch_scan, name="dispatch-scan"),
    path("dispatch/<str:order_id>/remove/", views.dispatch_remove, name="dispatch-remove"),
    path("dispatch/<str:order_id>/submit/", views.dispatch_submit, name="dispatch-submit"),
    path("reports/final-fabric/", views.report_final_fabric, name="report-final-fabric"),
    path("reports/fabric-stock/", views.report_fabric_stock, name="report-fabric-stock"),
    path("reports/dashboard/", views.report_dashboard, name="report-dashboard"),
]
