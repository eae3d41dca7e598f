"""
Collaborator dependencies shared by the routers.

Tests swap these through ``app.dependency_overrides``.
"""

from stemelix.meetings.zoom import ZoomClient
from stemelix.notifications.invoice import InvoiceRenderer
from stemelix.notifications.mailer import Mailer

_mailer = Mailer()
_renderer = InvoiceRenderer()
_zoom_client = ZoomClient()


def get_mailer() -> Mailer:
    return _mailer


def get_invoice_renderer() -> InvoiceRenderer:
    return _renderer


def get_zoom_client() -> ZoomClient:
    return _zoom_client
