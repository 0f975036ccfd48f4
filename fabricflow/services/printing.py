import logging
from dataclasses import dataclass

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrintResult:
    success: bool
    message: str = ""


class StickerPrinter:
    """HTTP client for the label printing service.

    Printing is a side effect: it is never retried and never raises, a
    failed call comes back as ``PrintResult(success=False, ...)``.
    """

    def __init__(self, base_url=None, timeout=None, session=None):
        self.base_url = (base_url if base_url is not None else getattr(settings, "STICKER_PRINT_URL", "")).rstrip("/")
        self.timeout = timeout if timeout is not None else getattr(settings, "STICKER_PRINT_TIMEOUT", 10)
        self.session = session or requests.Session()

    def _post(self, path, payload):
        if not self.base_url:
            return PrintResult(False, "Sticker printer is not configured")
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Sticker print to %s failed: %s", url, e)
            return PrintResult(False, f"Sticker print failed: {e}")
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            message = body.get("message") or "Printer rejected the job"
            logger.warning("Sticker print to %s rejected: %s", url, message)
            return PrintResult(False, message)
        message = body.get("message", "Printed") if isinstance(body, dict) else "Printed"
        return PrintResult(True, message)

    def print_fg_sticker(self, confirmation, reprint_reason=None):
        payload = {
            "confirmation_id": confirmation.pk,
            "lot_no": confirmation.allotment.allotment_id,
            "machine_name": confirmation.machine_name,
            "roll_no": confirmation.roll_no,
            "fg_roll_no": confirmation.fg_roll_no,
            "gross_weight": str(confirmation.gross_weight),
            "net_weight": str(confirmation.net_weight),
        }
        if reprint_reason:
            payload["reprint_reason"] = reprint_reason
        return self._post(f"fg-roll/{confirmation.pk}", payload)

    def print_roll_label(self, barcode_text, reprint_reason=None):
        payload = {"barcode": barcode_text}
        if reprint_reason:
            payload["reprint_reason"] = reprint_reason
        return self._post("roll-label", payload)
