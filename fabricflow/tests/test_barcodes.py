import pytest

from fabricflow.exceptions import MalformedBarcodeError
from fabricflow.services.barcodes import RollIdentity, decode_roll_barcode, encode_roll_barcode


def test_decode_roll_label():
    identity = decode_roll_barcode("LOT00001#KM-01#17")
    assert identity == RollIdentity("LOT00001", "KM-01", "17")
    assert not identity.is_fg


def test_decode_fg_sticker():
    identity = decode_roll_barcode(" LOT00001#KM-01#17#5 ", require_fg=True)
    assert identity.fg_roll_no == "5"
    assert identity.is_fg
    assert identity.encode() == "LOT00001#KM-01#17#5"


@pytest.mark.parametrize("raw", ["", "LOT00001", "LOT00001#KM-01", "LOT00001##17", "a#b#c#d#e", "#KM#1"])
def test_partial_or_padded_scans_fail(raw):
    with pytest.raises(MalformedBarcodeError):
        decode_roll_barcode(raw)


def test_fg_scan_requires_four_parts():
    with pytest.raises(MalformedBarcodeError):
        decode_roll_barcode("LOT00001#KM-01#17", require_fg=True)


def test_encode_rejects_separator_in_parts():
    with pytest.raises(MalformedBarcodeError):
        encode_roll_barcode("LOT#1", "KM-01", 1)
    with pytest.raises(MalformedBarcodeError):
        encode_roll_barcode("LOT1", "", 1)
