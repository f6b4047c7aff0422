"""
QR Code Generator Module - Event Check-in

This module renders participant identifiers into scannable QR code images.
The payload of every code is the bare participant identifier, so any
scanner that reads the code can look the participant up directly.

Features:
- QR code generation with configurable size, border and colors
- PNG output as raw bytes, base64 and data URL
- Data URL decoding for downloads and email attachments
- Download filename helpers
"""

import qrcode
import io
import base64
import re
import logging
from typing import Any, Dict, Optional

DATA_URL_PREFIX = 'data:image/png;base64,'


class QRGenerator:
    """
    QR code generator for participant badges.
    Produces PNG images encoding a participant identifier.
    """

    def __init__(self, box_size: int = 8, border: int = 2,
                 fill_color: str = '#000000', back_color: str = '#FFFFFF'):
        """
        Initialize the QR code generator.

        Args:
            box_size (int): Size of each module in pixels
            border (int): Quiet zone width in modules
            fill_color (str): Module color
            back_color (str): Background color
        """
        self.logger = logging.getLogger(__name__)

        self.default_settings = {
            'version': None,  # Let qrcode pick the smallest version that fits
            'error_correction': qrcode.constants.ERROR_CORRECT_M,  # ~15% error correction
            'box_size': box_size,
            'border': border,
            'fill_color': fill_color,
            'back_color': back_color
        }

    @classmethod
    def from_config(cls, config) -> 'QRGenerator':
        return cls(
            box_size=config.get('QR_CODE_SIZE', 8),
            border=config.get('QR_CODE_BORDER', 2),
            fill_color=config.get('QR_CODE_FILL_COLOR', '#000000'),
            back_color=config.get('QR_CODE_BACK_COLOR', '#FFFFFF'),
        )

    def generate_participant_qr_code(self, participant_id: str,
                                     custom_settings: Optional[dict] = None) -> Dict[str, Any]:
        """
        Generate a QR code whose payload is the participant identifier.

        Args:
            participant_id (str): Participant identifier to encode
            custom_settings (dict): Overrides for the default settings

        Returns:
            Dict[str, Any]: PNG bytes, base64 string, data URL and image size
        """
        if not participant_id:
            raise ValueError("participant_id is required to generate a QR code")

        settings = self.default_settings.copy()
        if custom_settings:
            settings.update(custom_settings)

        qr = qrcode.QRCode(
            version=settings['version'],
            error_correction=settings['error_correction'],
            box_size=settings['box_size'],
            border=settings['border']
        )
        qr.add_data(participant_id)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=settings['fill_color'],
            back_color=settings['back_color']
        )

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        png_bytes = buffer.getvalue()
        img_base64 = base64.b64encode(png_bytes).decode('ascii')

        self.logger.debug(f"QR code generated for participant {participant_id}")

        return {
            'qr_data': participant_id,
            'png_bytes': png_bytes,
            'image_base64': img_base64,
            'data_url': DATA_URL_PREFIX + img_base64,
            'image_size': img.size,
        }


def decode_data_url(data_url: str) -> bytes:
    """
    Extract the PNG bytes from a ``data:image/png;base64,...`` URL.

    Raises:
        ValueError: If the value is not a base64 PNG data URL
    """
    if not data_url or not data_url.startswith(DATA_URL_PREFIX):
        raise ValueError("Not a PNG data URL")
    try:
        return base64.b64decode(data_url[len(DATA_URL_PREFIX):], validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError("Malformed base64 payload in data URL") from e


def qr_download_filename(full_name: str, prefix: str = 'event-qr') -> str:
    """Build a download name such as ``event-qr-Ana-Gomez.png``."""
    slug = re.sub(r'\s+', '-', (full_name or '').strip())
    return f"{prefix}-{slug}.png" if slug else f"{prefix}.png"
