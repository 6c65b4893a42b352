from datetime import datetime, timezone
from email import message_from_bytes, policy

import pytest

from conftest import build_email
from mail.errors import MessageParseError
from mail.message_parser import parse_message


class TestParseMessage:

    def test_headers(self):
        record = parse_message(42, build_email(text="Monto: ₡1,000.00"))
        assert record.uid == 42
        assert record.message_id == "<tx-1@bank.example>"
        assert record.sender == "notificacion@notificacionesbaccr.com"
        assert record.subject == "Notificación de transacción"
        assert record.timestamp == datetime(2025, 8, 15, 14, 30, tzinfo=timezone.utc)

    def test_plain_text_only(self):
        record = parse_message(1, build_email(text="Monto: ₡1,000.00"))
        assert "₡1,000.00" in record.text_body
        assert record.html_body == ""
        assert record.body == record.text_body

    def test_html_preferred_for_body(self):
        record = parse_message(1, build_email(text="plain", html="<p>Monto: $5.00</p>"))
        assert "plain" in record.text_body
        assert "<p>Monto: $5.00</p>" in record.html_body
        assert record.body == record.html_body

    def test_html_only(self):
        record = parse_message(1, build_email(html="<b>Compra aprobada</b>"))
        assert record.text_body == ""
        assert "Compra aprobada" in record.html_body

    def test_attachments_skipped(self):
        raw = build_email(text="Monto: $5.00")
        msg = message_from_bytes(raw, policy=policy.default)
        msg.add_attachment("Comprobante adjunto", filename="comprobante.txt")
        record = parse_message(1, msg.as_bytes())
        assert "Monto: $5.00" in record.text_body
        assert "Comprobante adjunto" not in record.text_body

    def test_latin1_body(self):
        raw = (
            b"Message-ID: <latin@bank.example>\r\n"
            b"From: alertas@bncr.fi.cr\r\n"
            b"Subject: Compra\r\n"
            b"Content-Type: text/plain; charset=iso-8859-1\r\n"
            b"\r\n"
            b"Transacci\xf3n aprobada\r\n"
        )
        record = parse_message(7, raw)
        assert "Transacción aprobada" in record.text_body
        assert record.timestamp is None

    def test_unknown_charset_falls_back_to_utf8(self):
        raw = (
            b"Message-ID: <odd@bank.example>\r\n"
            b"From: alertas@bncr.fi.cr\r\n"
            b"Content-Type: text/plain; charset=x-no-such-charset\r\n"
            b"\r\n"
            b"Monto: 10.00\r\n"
        )
        assert "Monto: 10.00" in parse_message(1, raw).text_body

    def test_non_text_single_part_kept_raw(self):
        raw = (
            b"Message-ID: <csv@bank.example>\r\n"
            b"From: alertas@bncr.fi.cr\r\n"
            b"Content-Type: application/octet-stream\r\n"
            b"\r\n"
            b"fecha;monto\r\n"
        )
        record = parse_message(1, raw)
        assert record.text_body == ""
        assert "fecha;monto" in record.raw_body
        assert record.body == record.raw_body

    def test_bad_date_header(self):
        raw = (
            b"Message-ID: <d@bank.example>\r\n"
            b"Date: sometime last week\r\n"
            b"\r\n"
            b"hello\r\n"
        )
        assert parse_message(1, raw).timestamp is None

    def test_missing_message_id(self):
        with pytest.raises(MessageParseError, match="Message-ID"):
            parse_message(3, build_email(text="hi", message_id=None))

    def test_empty_bytes(self):
        with pytest.raises(MessageParseError):
            parse_message(3, b"")
