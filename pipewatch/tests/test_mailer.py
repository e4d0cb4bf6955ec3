"""Tests for the SMTP mail transport."""

import smtplib

import pytest
from pipewatch.src.config import Settings
from pipewatch.src.services.errors import DeliveryFailed
from pipewatch.src.services.mailer import SmtpMailer, describe

@pytest.mark.asyncio
async def test_unconfigured_mailer_is_noop():
    mailer = SmtpMailer.from_settings(Settings(smtp_host=""))

    assert not mailer.configured
    assert await mailer.deliver("dev@example.com", "subject", "body") is False
    assert describe(mailer) == "disabled"

@pytest.mark.asyncio
async def test_deliver_builds_message(monkeypatch):
    mailer = SmtpMailer(host="smtp.example.com", port=2525, sender="pipewatch@example.com")
    sent = []
    monkeypatch.setattr(mailer, "_send", sent.append)

    assert await mailer.deliver("dev@example.com", "[SUCCESS] Pipeline: web", "All good\n") is True

    message = sent[0]
    assert message["To"] == "dev@example.com"
    assert message["From"] == "pipewatch@example.com"
    assert message["Subject"] == "[SUCCESS] Pipeline: web"
    assert message.get_content() == "All good\n"
    assert describe(mailer) == "smtp.example.com:2525"

@pytest.mark.asyncio
async def test_transport_error_raises_delivery_failed(monkeypatch):
    mailer = SmtpMailer(host="smtp.example.com", sender="pipewatch@example.com")

    def refuse(message):
        raise smtplib.SMTPRecipientsRefused({"dev@example.com": (550, b"no such user")})

    monkeypatch.setattr(mailer, "_send", refuse)

    with pytest.raises(DeliveryFailed) as exc_info:
        await mailer.deliver("dev@example.com", "subject", "body")
    assert exc_info.value.address == "dev@example.com"
