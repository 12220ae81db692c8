"""QR code rendering for editor links."""

from dataclasses import dataclass

import segno

from cake_orders.services.sessions import QrCodeRenderer


@dataclass(frozen=True)
class SegnoQrCodeRenderer(QrCodeRenderer):
    """Renders PNG data URLs the kiosk can show directly in an img tag."""

    scale: int = 8
    border: int = 2

    def render(self, url: str) -> str:
        """Return the QR code for ``url`` as a PNG data URL."""
        qr = segno.make(url, error="m")
        return qr.png_data_uri(scale=self.scale, border=self.border)
