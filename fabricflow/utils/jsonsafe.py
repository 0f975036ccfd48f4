import dataclasses
from datetime import date, datetime, time
from decimal import Decimal

from django.db.models import Model, QuerySet


def json_safe(obj):
    """Reduce alert payloads to JSON types. Weights keep their exact digits."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, BaseException):
        return f"{obj.__class__.__name__}: {obj}"
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return json_safe(dataclasses.asdict(obj))
    if isinstance(obj, Model):
        return json_safe(obj.pk)
    if isinstance(obj, QuerySet):
        return [json_safe(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [json_safe(v) for v in obj]
    return str(obj)
