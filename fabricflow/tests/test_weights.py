from decimal import Decimal

import pytest
from django.test import override_settings

from fabricflow.exceptions import InvalidWeightError, NegativeNetWeightError, ValidationError
from fabricflow.services.weights import exceeds_tolerance, normalize, parse_scale_reading, tolerance


def test_normalize_excludes_shrink_wrap_from_net():
    w = normalize("50.00", Decimal("0.800"), Decimal("0.200"))
    assert w.measured_gross == Decimal("50.00")
    assert w.display_gross == Decimal("50.20")
    assert w.tare == Decimal("0.80")
    assert w.net == Decimal("49.20")


def test_normalize_whole_numbers():
    w = normalize(50, 5, 2)
    assert w.net == Decimal("45.00")
    assert w.display_gross == Decimal("52.00")
    with pytest.raises(NegativeNetWeightError):
        normalize(3, 5, 0)


def test_normalize_rounds_half_up_to_two_places():
    w = normalize("10.005", 0, 0)
    assert w.net == Decimal("10.01")
    assert w.display_gross == Decimal("10.01")


def test_net_of_zero_is_allowed():
    w = normalize("0.8", Decimal("0.8"), 0)
    assert w.net == Decimal("0.00")


@pytest.mark.parametrize("raw", ["0", "-1", "0.00"])
def test_non_positive_gross_is_rejected(raw):
    with pytest.raises(InvalidWeightError):
        normalize(raw, 0, 0)


def test_gross_below_tare_is_negative_net():
    with pytest.raises(NegativeNetWeightError) as exc:
        normalize("0.50", Decimal("0.80"), 0)
    assert "re-weigh" in exc.value.message


def test_negative_packaging_is_rejected():
    with pytest.raises(ValidationError):
        normalize("10", Decimal("-0.1"), 0)


@pytest.mark.parametrize("raw,expected", [
    ("50.2", Decimal("50.2")),
    (" 50.2 kg ", Decimal("50.2")),
    ("50.2KG", Decimal("50.2")),
    (50.2, Decimal("50.2")),
    (Decimal("7.5"), Decimal("7.5")),
])
def test_parse_scale_reading(raw, expected):
    assert parse_scale_reading(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "abc", "kg", "nan"])
def test_parse_scale_reading_rejects_garbage(raw):
    with pytest.raises(InvalidWeightError):
        parse_scale_reading(raw)


def test_exceeds_tolerance_uses_absolute_difference():
    assert exceeds_tolerance(Decimal("25.60"), Decimal("25"), Decimal("0.5"))
    assert exceeds_tolerance(Decimal("24.40"), Decimal("25"), Decimal("0.5"))
    assert not exceeds_tolerance(Decimal("25.50"), Decimal("25"), Decimal("0.5"))


def test_exceeds_tolerance_skips_unplanned_rolls():
    assert not exceeds_tolerance(Decimal("99"), Decimal("0"), Decimal("0.5"))


@override_settings(FABRICFLOW_WEIGHT_TOLERANCE_KG=None)
def test_tolerance_can_be_switched_off():
    assert tolerance() is None
    assert not exceeds_tolerance(Decimal("99"), Decimal("25"))


@pytest.mark.parametrize("raw", [Decimal("NaN"), Decimal("Infinity"), float("nan"), float("inf")])
def test_non_finite_numbers_are_rejected(raw):
    with pytest.raises(InvalidWeightError):
        parse_scale_reading(raw)


@pytest.mark.parametrize("raw", ["1e30", "10000", Decimal("1E+30"), 10000.5])
def test_readings_beyond_scale_capacity_are_rejected(raw):
    with pytest.raises(InvalidWeightError):
        normalize(raw, Decimal("0.8"), Decimal("0.2"))


def test_heaviest_scale_reading_still_fits():
    w = normalize("9999.99", Decimal("0.8"), Decimal("0.2"))
    assert w.net == Decimal("9999.19")
