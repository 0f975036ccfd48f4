import logging

from fabricflow.exceptions import NotFoundError
from fabricflow.models import Location, StorageCapture

logger = logging.getLogger(__name__)

SESSION_KEY = "fabricflow.lot_locations"


class LocationCache:
    """Lot -> location code map scoped to one operator workflow.

    ``store`` is any mutable mapping; the API passes ``request.session`` so
    the cache lives as long as the terminal's session and is dropped on
    reset.
    """

    def __init__(self, store=None):
        self.store = store if store is not None else {}

    def _data(self):
        return self.store.get(SESSION_KEY) or {}

    def get(self, lot_id):
        return self._data().get(str(lot_id))

    def set(self, lot_id, code):
        data = dict(self._data())
        data[str(lot_id)] = code
        self.store[SESSION_KEY] = data

    def clear(self):
        self.store.pop(SESSION_KEY, None)

    def __contains__(self, lot_id):
        return str(lot_id) in self._data()


def occupied_location_codes():
    return set(
        StorageCapture.objects.filter(is_dispatched=False)
        .exclude(location_code="")
        .values_list("location_code", flat=True)
    )


def is_location_empty(code) -> bool:
    return not StorageCapture.objects.filter(location_code=code, is_dispatched=False).exists()


def assign_location(lot_id, cache=None):
    """Return the location for ``lot_id``, or None if every location is taken.

    A lot stays pinned to the location of its first stored roll, even once
    that roll has left on a dispatch. New lots get the first empty location.
    The two lookups run one after the other on the same connection.
    """
    cache = cache if cache is not None else LocationCache()
    lot_id = str(lot_id)

    cached = cache.get(lot_id)
    if cached:
        loc = Location.objects.filter(code=cached).first()
        if loc is not None:
            return loc

    first = (
        StorageCapture.objects.filter(lot_no=lot_id)
        .exclude(location_code="")
        .order_by("id")
        .first()
    )
    if first is not None:
        loc = Location.objects.filter(code=first.location_code).first()
        if loc is not None:
            cache.set(lot_id, loc.code)
            return loc
        logger.warning("Lot %s is stored at unknown location %s", lot_id, first.location_code)

    occupied = occupied_location_codes()
    for loc in Location.objects.filter(is_active=True).order_by("id"):
        if loc.code not in occupied:
            cache.set(lot_id, loc.code)
            return loc

    logger.warning("No empty location left for lot %s", lot_id)
    return None


def create_storage_capture(lot_no, fg_roll_no, location_code="", tape="", customer_name=""):
    """Idempotent on ``(lot_no, fg_roll_no)`` so a retried call cannot duplicate."""
    capture, created = StorageCapture.objects.get_or_create(
        lot_no=str(lot_no),
        fg_roll_no=str(fg_roll_no),
        defaults={
            "location_code": location_code or "",
            "tape": tape or "",
            "customer_name": customer_name or "",
            "is_dispatched": False,
        },
    )
    if created:
        logger.info("Stored lot %s FG roll %s at %s", lot_no, fg_roll_no, location_code or "(unassigned)")
    return capture


def find_captures(lot_no=None, fg_roll_no=None):
    qs = StorageCapture.objects.all()
    if lot_no:
        qs = qs.filter(lot_no=lot_no)
    if fg_roll_no:
        qs = qs.filter(fg_roll_no=fg_roll_no)
    return qs.order_by("id")


def assign_capture_location(capture_id, location_code):
    """Manual fix for a capture stored without a location."""
    loc = Location.objects.filter(code=location_code, is_active=True).first()
    if loc is None:
        raise NotFoundError(f"Location {location_code} not found")
    updated = StorageCapture.objects.filter(pk=capture_id).update(location_code=loc.code)
    if not updated:
        raise NotFoundError(f"Storage capture {capture_id} not found")
    return StorageCapture.objects.get(pk=capture_id)
