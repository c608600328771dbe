from __future__ import annotations

import json

import httpx
import pytest

from modcar.config import settings
from modcar.routers import functions as functions_router
from modcar.services import email as email_service


def _mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_render_contains_partner_data():
    html = email_service.render_welcome_email(
        email="ana@pereira.com.br",
        name="Ana",
        company_name="Pereira Autopeças",
        plan="v6",
    )
    assert "Olá, Ana!" in html
    assert "Pereira Autopeças" in html
    assert "ana@pereira.com.br" in html
    assert ">V6<" in html
    assert settings.APP_BASE_URL in html


def test_render_escapes_html():
    html = email_service.render_welcome_email(
        email="x@y.com.br", name="<script>", company_name="ACME", plan="turbo"
    )
    assert "<script>" not in html


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    with pytest.raises(email_service.EmailError):
        email_service.send_welcome_email(email="a@b.com.br", name="A", company_name="B", plan="turbo")


def test_send_posts_to_provider(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    result = email_service.send_welcome_email(
        email="ana@pereira.com.br",
        name="Ana",
        company_name="Pereira Autopeças",
        plan="v12",
        client=_mock_client(handler),
    )

    assert result == {"id": "email_123"}
    assert seen["url"] == settings.RESEND_API_URL
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["ana@pereira.com.br"]
    assert seen["body"]["from"] == settings.EMAIL_FROM
    assert seen["body"]["subject"] == email_service.WELCOME_SUBJECT


def test_provider_error_raises(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "invalid from"})

    with pytest.raises(email_service.EmailError):
        email_service.send_welcome_email(
            email="a@b.com.br", name="A", company_name="B", plan="turbo", client=_mock_client(handler)
        )


def test_dispatch_only_logs_failures(monkeypatch):
    def boom(**kwargs):
        raise email_service.EmailError("provider down")

    monkeypatch.setattr(email_service, "send_welcome_email", boom)
    email_service.dispatch_welcome_email(email="a@b.com.br", name="A", company_name="B", plan="turbo")


def test_send_welcome_email_function(client, admin_headers, monkeypatch):
    payload = {"email": "ana@pereira.com.br", "name": "Ana", "companyName": "Pereira", "plan": "V6"}

    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    r = client.post("/functions/v1/send-welcome-email", json=payload, headers=admin_headers)
    assert r.status_code == 500
    assert "error" in r.json()

    monkeypatch.setattr(functions_router, "send_welcome_email", lambda **kwargs: {"id": "email_456"})
    r = client.post("/functions/v1/send-welcome-email", json=payload, headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"id": "email_456"}


def test_send_welcome_email_function_requires_token(client, monkeypatch):
    sent = []
    monkeypatch.setattr(functions_router, "send_welcome_email", lambda **kwargs: sent.append(kwargs))
    payload = {"email": "ana@pereira.com.br", "name": "Ana", "companyName": "Pereira", "plan": "V6"}

    r = client.post("/functions/v1/send-welcome-email", json=payload)
    assert r.status_code == 401
    assert "error" in r.json()

    r = client.post(
        "/functions/v1/send-welcome-email",
        json=payload,
        headers={"Authorization": "Bearer nao-e-um-jwt"},
    )
    assert r.status_code == 401
    assert sent == []
