"""Tests for the mailer backends and the invoice renderer."""

from datetime import datetime

import pytest

from stemelix.errors import ValidationError
from stemelix.notifications import mailer as mailer_module
from stemelix.notifications.invoice import InvoiceData, InvoiceRenderer
from stemelix.notifications.mailer import Attachment, Mailer, payment_verified_email


def invoice_data(**overrides):
    data = {
        "order_id": "ORD_1",
        "user_name": "Asha",
        "user_email": "asha@example.com",
        "course_title": "Robotics Basics",
        "amount": 2999,
        "transaction_id": "GPAY123",
        "verified_at": datetime(2024, 3, 1, 10, 30),
    }
    data.update(overrides)
    return InvoiceData(**data)


class TestInvoiceRenderer:
    def test_renders_pdf(self):
        pdf = InvoiceRenderer().render(invoice_data())
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    @pytest.mark.parametrize("field", ["order_id", "user_name", "course_title"])
    def test_missing_data(self, field):
        with pytest.raises(ValidationError):
            InvoiceRenderer().render(invoice_data(**{field: ""}))


class TestMailer:
    async def test_log_backend(self, caplog):
        caplog.set_level("INFO")
        sent = await Mailer("log").send(
            "asha@example.com", "Hello", "<p>Hi</p>", Attachment("invoice.pdf", b"%PDF")
        )
        assert sent is True
        assert "invoice.pdf" in caplog.text

    async def test_smtp_failure_reports_false(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr(mailer_module.smtplib, "SMTP", refuse)
        assert await Mailer("smtp").send("asha@example.com", "Hello", "<p>Hi</p>") is False

    async def test_smtp_delivery(self, monkeypatch):
        delivered = []

        class FakeSMTP:
            def __init__(self, host, port, timeout=None):
                self.host = host

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def starttls(self):
                pass

            def login(self, user, password):
                pass

            def send_message(self, msg):
                delivered.append(msg)

        monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)
        sent = await Mailer("smtp").send(
            "asha@example.com", "Invoice", "<p>Hi</p>", Attachment("invoice.pdf", b"%PDF-1.4")
        )
        assert sent is True
        msg = delivered[0]
        assert msg["To"] == "asha@example.com"
        filenames = [part.get_filename() for part in msg.walk() if part.get_filename()]
        assert filenames == ["invoice.pdf"]

    def test_payment_template(self):
        html = payment_verified_email("Asha", "Robotics Basics", "ORD_1", 2999, "INR")
        assert "Robotics Basics" in html
        assert "INR 2,999.00" in html
