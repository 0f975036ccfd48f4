from dataclasses import asdict

from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response

from .exceptions import ValidationError
from .models import (
    DispatchPlanning,
    GeneratedBarcode,
    Location,
    ManualActionAlert,
    ProductionAllotment,
    RollAssignment,
    RollConfirmation,
    Shift,
    StorageCapture,
    UserProfile,
)
from .permissions import IsDispatcher, IsPlanner, IsShopFloor, is_admin, user_role
from .serializers import (
    AssignLocationSerializer,
    AssignmentCreateSerializer,
    BarcodeSerializer,
    DispatchPlanningSerializer,
    DispatchPlanSerializer,
    FGConfirmSerializer,
    GenerateBarcodesSerializer,
    GeneratedBarcodeSerializer,
    LocationSerializer,
    LotCreateSerializer,
    LotStatusSerializer,
    MachineAllocationSerializer,
    MachinePlanUpdateSerializer,
    ManualActionAlertSerializer,
    NewLotSerializer,
    ProductionAllotmentSerializer,
    RemoveRollSerializer,
    ReprintFGSerializer,
    ReprintLabelSerializer,
    RollAssignmentSerializer,
    RollCaptureSerializer,
    RollConfirmationSerializer,
    SelectLotSerializer,
    ShiftSerializer,
    StorageCaptureSerializer,
    outcome_payload,
    pick_payload,
    progress_payload,
)
from .services import allocation, alerts, confirmation, dispatch, lot_status, reporting, storage


def _date_param(request, name):
    raw = request.query_params.get(name)
    if not raw:
        return None
    value = parse_date(raw)
    if value is None:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)")
    return value


def _print_payload(result):
    return {"success": result.success, "message": result.message}


#
# Planning
#
class ProductionAllotmentViewSet(mixins.ListModelMixin,
                                 mixins.RetrieveModelMixin,
                                 mixins.CreateModelMixin,
                                 viewsets.GenericViewSet):
    queryset = ProductionAllotment.objects.prefetch_related("machine_allocations")
    serializer_class = ProductionAllotmentSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlanner]
    lookup_field = "allotment_id"

    def get_queryset(self):
        qs = super().get_queryset()
        date_from = _date_param(self.request, "date_from")
        date_to = _date_param(self.request, "date_to")
        if date_from:
            qs = qs.filter(created_at__date__gte=date_from)
        if date_to:
            qs = qs.filter(created_at__date__lte=date_to)
        sales_order = self.request.query_params.get("sales_order_id")
        if sales_order:
            qs = qs.filter(sales_order_id=sales_order)
        return qs

    def create(self, request, *args, **kwargs):
        ser = LotCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        machines = data.pop("machines")
        lot = lot_status.create_lot(machines=machines, actor=request.user, **data)
        return Response(self.get_serializer(lot).data, status=status.HTTP_201_CREATED)

    def _respond(self, lot):
        lot = self.get_queryset().get(pk=lot.pk)
        return Response(self.get_serializer(lot).data)

    @action(detail=False, methods=["get"], url_path="next-id")
    def next_id(self, request):
        return Response({"allotment_id": lot_status.next_allotment_id()})

    @action(detail=True, methods=["post"], url_path="hold")
    def hold(self, request, allotment_id=None):
        return self._respond(lot_status.toggle_hold(allotment_id, request.user))

    @action(detail=True, methods=["post"], url_path="suspend")
    def suspend(self, request, allotment_id=None):
        return self._respond(lot_status.suspend(allotment_id, request.user))

    @action(detail=True, methods=["post"], url_path="restart")
    def restart(self, request, allotment_id=None):
        return self._respond(lot_status.restart(allotment_id, request.user))

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, allotment_id=None):
        ser = LotStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return self._respond(lot_status.set_status(allotment_id, ser.validated_data["status"], request.user))

    @action(detail=True, methods=["post"], url_path="new-lot")
    def new_lot(self, request, allotment_id=None):
        ser = NewLotSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        successor = lot_status.create_new_lot(
            allotment_id, request.user, allotment_id=ser.validated_data.get("allotment_id")
        )
        lot = self.get_queryset().get(pk=successor.pk)
        return Response(self.get_serializer(lot).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="allocation-status")
    def allocation_status(self, request, allotment_id=None):
        return Response(lot_status.allotment_status(allotment_id))

    @action(detail=True, methods=["put"], url_path="machine-allocations")
    def machine_allocations(self, request, allotment_id=None):
        ser = MachinePlanUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        rows = lot_status.update_machine_allocations(
            allotment_id, ser.validated_data["machines"], request.user
        )
        return Response(MachineAllocationSerializer(rows, many=True).data)


class ShiftViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Shift.objects.filter(is_active=True)
    serializer_class = ShiftSerializer
    permission_classes = [permissions.IsAuthenticated]


class RollAssignmentViewSet(mixins.ListModelMixin,
                            mixins.RetrieveModelMixin,
                            viewsets.GenericViewSet):
    queryset = RollAssignment.objects.select_related(
        "shift", "machine_allocation__allotment"
    ).prefetch_related("generated_barcodes__machine_allocation__allotment")
    serializer_class = RollAssignmentSerializer
    permission_classes = [permissions.IsAuthenticated, IsShopFloor]

    def get_queryset(self):
        qs = super().get_queryset()
        ma = self.request.query_params.get("machine_allocation")
        if ma:
            qs = qs.filter(machine_allocation_id=ma)
        return qs

    def create(self, request):
        ser = AssignmentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        d = ser.validated_data
        assignment = allocation.create_assignment(
            d["machine_allocation"], d["shift"], d["assigned_rolls"], d["operator_name"], actor=request.user
        )
        return Response(self.get_serializer(assignment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="generate-barcodes")
    def generate_barcodes(self, request, pk=None):
        ser = GenerateBarcodesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        batch = allocation.generate_barcodes(pk, ser.validated_data["count"], actor=request.user)
        assignment = self.get_queryset().get(pk=batch.assignment.pk)
        return Response({
            "assignment": self.get_serializer(assignment).data,
            "barcodes": GeneratedBarcodeSerializer(
                GeneratedBarcode.objects.filter(pk__in=[b.pk for b in batch.barcodes])
                .select_related("machine_allocation__allotment"),
                many=True,
            ).data,
            "warnings": batch.warnings,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="reprint-label")
    def reprint_label(self, request, pk=None):
        ser = ReprintLabelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        bc = get_object_or_404(GeneratedBarcode, pk=ser.validated_data["barcode_id"], assignment_id=pk)
        result = allocation.reprint_roll_label(bc.pk, ser.validated_data["reason"], actor=request.user)
        return Response(_print_payload(result))


#
# Confirmation
#
class RollConfirmationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = RollConfirmation.objects.select_related("allotment")
    serializer_class = RollConfirmationSerializer
    permission_classes = [permissions.IsAuthenticated, IsShopFloor]

    def get_queryset(self):
        qs = super().get_queryset()
        lot = self.request.query_params.get("lot")
        if lot:
            qs = qs.filter(allotment__allotment_id=lot)
        return qs

    @action(detail=False, methods=["post"], url_path="capture")
    def capture(self, request):
        ser = RollCaptureSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        specs = dict(ser.validated_data)
        barcode = specs.pop("barcode")
        rc = confirmation.record_roll_capture(barcode, actor=request.user, **specs)
        return Response(self.get_serializer(rc).data, status=status.HTTP_201_CREATED)


def _fg_session(request):
    return confirmation.FGConfirmationSession(store=request.session)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsShopFloor])
def fg_scan(request):
    ser = BarcodeSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    preview = _fg_session(request).scan(ser.validated_data["barcode"])
    return Response(asdict(preview))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsShopFloor])
def fg_confirm(request):
    ser = FGConfirmSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    outcome = _fg_session(request).confirm_barcode(
        d["barcode"], d["gross_weight"], actor=request.user, override=d["override_weight_mismatch"]
    )
    return Response(outcome_payload(outcome))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def fg_reset(request):
    _fg_session(request).reset()
    return Response({"status": "reset"})


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsShopFloor])
def fg_reprint(request):
    ser = ReprintFGSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    result = confirmation.reprint_fg_sticker(
        ser.validated_data["barcode"], ser.validated_data["reason"], actor=request.user
    )
    return Response(_print_payload(result))


#
# Warehouse
#
class LocationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Location.objects.all()
    serializer_class = LocationSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = super().get_queryset()
        code = self.request.query_params.get("code")
        if code:
            qs = qs.filter(code__icontains=code)
        return qs


class StorageCaptureViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StorageCapture.objects.all()
    serializer_class = StorageCaptureSerializer
    permission_classes = [permissions.IsAuthenticated, IsShopFloor]

    def get_queryset(self):
        return storage.find_captures(
            lot_no=self.request.query_params.get("lot_no"),
            fg_roll_no=self.request.query_params.get("fg_roll_no"),
        )

    @action(detail=True, methods=["post"], url_path="assign-location")
    def assign_location(self, request, pk=None):
        ser = AssignLocationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        capture = storage.assign_capture_location(pk, ser.validated_data["location_code"])
        return Response(self.get_serializer(capture).data)


#
# Dispatch
#
class DispatchPlanningViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = DispatchPlanning.objects.prefetch_related("dispatched_rolls")
    serializer_class = DispatchPlanningSerializer
    permission_classes = [permissions.IsAuthenticated, IsDispatcher]

    def get_queryset(self):
        qs = super().get_queryset()
        order = self.request.query_params.get("dispatch_order_id")
        if order:
            qs = qs.filter(dispatch_order_id=order)
        return qs


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_plan(request):
    ser = DispatchPlanSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    plannings = dispatch.plan_dispatch(
        d["dispatch_order_id"], d["lots"], loading_no=d.get("loading_no"), actor=request.user
    )
    return Response(DispatchPlanningSerializer(plannings, many=True).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_open(request, order_id):
    session = dispatch.PickingSession.open(order_id, store=request.session)
    progress = session.progress()
    return Response(progress_payload(progress, session.active(progress).lot_no))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_select_lot(request, order_id):
    ser = SelectLotSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    session = dispatch.PickingSession(order_id, store=request.session)
    lp = session.select_lot(ser.validated_data["lot_no"])
    return Response(progress_payload(session.progress(), lp.lot_no))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_scan(request, order_id):
    ser = BarcodeSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    session = dispatch.PickingSession(order_id, store=request.session)
    loaded_by = request.user.get_full_name() or request.user.get_username()
    result = session.scan(ser.validated_data["barcode"], loaded_by=loaded_by)
    return Response(pick_payload(result))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_remove(request, order_id):
    ser = RemoveRollSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    session = dispatch.PickingSession(order_id, store=request.session)
    session.remove_roll(ser.validated_data["fg_roll_no"], ser.validated_data.get("lot_no"))
    progress = session.progress()
    return Response(progress_payload(progress, session.active(progress).lot_no))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsDispatcher])
def dispatch_submit(request, order_id):
    session = dispatch.PickingSession(order_id, store=request.session)
    progress = session.submit(actor=request.user)
    return Response({
        **progress_payload(progress),
        "plannings": DispatchPlanningSerializer(
            DispatchPlanning.objects.filter(dispatch_order_id=order_id), many=True
        ).data,
    })


#
# Reports and reconciliation
#
@api_view(["GET"])
def report_final_fabric(request):
    sales_order = request.query_params.get("sales_order_id")
    if sales_order and not sales_order.isdigit():
        raise ValidationError("sales_order_id must be a number")
    return Response(reporting.final_fabric_report(int(sales_order) if sales_order else None))


@api_view(["GET"])
def report_fabric_stock(request):
    return Response(reporting.fabric_stock_report(request.query_params.get("lot_no")))


@api_view(["GET"])
def report_dashboard(request):
    date_from = _date_param(request, "date_from")
    date_to = _date_param(request, "date_to")
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")
    return Response(reporting.dashboard(date_from, date_to))


class ManualActionAlertViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ManualActionAlert.objects.all()
    serializer_class = ManualActionAlertSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get("open") in ("1", "true", "True"):
            qs = qs.filter(is_resolved=False)
        lot = self.request.query_params.get("lot_no")
        if lot:
            qs = qs.filter(lot_no=lot)
        return qs

    @action(detail=True, methods=["post"], url_path="resolve")
    def resolve(self, request, pk=None):
        if not (is_admin(request.user) or user_role(request.user) == UserProfile.SUPERVISOR):
            return Response({"error": "Forbidden"}, status=403)
        alert = alerts.resolve_alert(pk, actor=request.user)
        return Response(self.get_serializer(alert).data)
