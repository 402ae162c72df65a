"""
Scannable verification artifact for a quitus.

Encodes the public verification URL as a QR code PNG data URI: error
correction level H, one-module quiet zone, black on white, about 200px
wide.
"""

import segno

from acge_kernel.domain.quitus import build_verification_url

TARGET_WIDTH_PX = 200
BORDER_MODULES = 1


def render_qr_data_uri(content: str, width: int = TARGET_WIDTH_PX) -> str:
    """PNG data URI of a QR code holding ``content``."""
    qr = segno.make(content, error="h", micro=False)
    modules, _ = qr.symbol_size(scale=1, border=BORDER_MODULES)
    scale = max(1, width // modules)
    return qr.png_data_uri(
        scale=scale,
        border=BORDER_MODULES,
        dark="#000000",
        light="#FFFFFF",
    )


def generate_verification_artifact(
    numero_quitus: str,
    quitus_hash: str,
    base_url: str,
) -> str:
    """QR code pointing at ``{base_url}/verify-quitus/{numero}?hash={hash}``."""
    return render_qr_data_uri(
        build_verification_url(base_url, numero_quitus, quitus_hash)
    )
