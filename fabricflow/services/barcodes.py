"""Composite roll identity printed on labels: ``lot#machine#roll[#fgRoll]``."""
from dataclasses import dataclass
from typing import Optional

from fabricflow.exceptions import MalformedBarcodeError

SEPARATOR = "#"


@dataclass(frozen=True)
class RollIdentity:
    lot_id: str
    machine_name: str
    roll_no: str
    fg_roll_no: Optional[str] = None

    @property
    def is_fg(self) -> bool:
        return self.fg_roll_no is not None

    def encode(self) -> str:
        return encode_roll_barcode(self.lot_id, self.machine_name, self.roll_no, self.fg_roll_no)


def _part(value, name):
    text = str(value).strip() if value is not None else ""
    if not text:
        raise MalformedBarcodeError(f"Barcode {name} is empty")
    if SEPARATOR in text:
        raise MalformedBarcodeError(f"Barcode {name} {text!r} contains '{SEPARATOR}'")
    return text


def encode_roll_barcode(lot_id, machine_name, roll_no, fg_roll_no=None) -> str:
    parts = [
        _part(lot_id, "lot id"),
        _part(machine_name, "machine name"),
        _part(roll_no, "roll number"),
    ]
    if fg_roll_no is not None:
        parts.append(_part(fg_roll_no, "FG roll number"))
    return SEPARATOR.join(parts)


def decode_roll_barcode(raw, require_fg=False) -> RollIdentity:
    """Parse a scanned label. Partial or padded scans fail closed."""
    text = (raw or "").strip()
    parts = [p.strip() for p in text.split(SEPARATOR)] if text else []
    if len(parts) < 3:
        raise MalformedBarcodeError(
            f"Invalid barcode format {text!r}; expected lot#machine#roll", barcode=text
        )
    if len(parts) > 4:
        raise MalformedBarcodeError(f"Invalid barcode format {text!r}; too many parts", barcode=text)
    if any(not p for p in parts):
        raise MalformedBarcodeError(f"Invalid barcode format {text!r}; empty part", barcode=text)
    if require_fg and len(parts) != 4:
        raise MalformedBarcodeError(
            f"Invalid FG barcode {text!r}; expected lot#machine#roll#fgRoll", barcode=text
        )
    return RollIdentity(*parts)
