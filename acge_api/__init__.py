"""
acge_api -- HTTP surface of the ACGE dossier workflow.

Exposes the workflow operations under ``/api/dossiers`` and the public
``/verify-quitus/{numeroQuitus}?hash=`` endpoint printed in quitus QR
codes.  All behaviour lives in ``acge_kernel``; this package only maps
requests to kernel calls and kernel errors to status codes.
"""

from acge_api.app import create_app

__all__ = ["create_app"]
