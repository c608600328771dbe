from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from modcar.config import TEMPLATES_DIR, settings
from modcar.services.plan_catalog import UnknownPlanError, get_plan

logger = logging.getLogger("modcar.email")

WELCOME_SUBJECT = "Bem-vindo à ModCar! 🚗"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


class EmailError(Exception):
    pass


def _plan_label(plan: str) -> str:
    try:
        return get_plan(plan).name
    except UnknownPlanError:
        return plan


def render_welcome_email(*, email: str, name: str, company_name: str, plan: str) -> str:
    return _env.get_template("welcome_email.html").render(
        email=email,
        name=name,
        company_name=company_name,
        plan=_plan_label(plan),
        platform_url=settings.APP_BASE_URL,
    )


def send_welcome_email(
    *,
    email: str,
    name: str,
    company_name: str,
    plan: str,
    client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """
    Envia o email de boas-vindas pela API do Resend.
    Retorna o JSON do provedor (ex.: ``{"id": "..."}``).
    """
    if not settings.RESEND_API_KEY:
        raise EmailError("RESEND_API_KEY não configurado")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [email],
        "subject": WELCOME_SUBJECT,
        "html": render_welcome_email(email=email, name=name, company_name=company_name, plan=plan),
    }
    headers = {"Authorization": f"Bearer {settings.RESEND_API_KEY}"}

    logger.info("sending welcome email to=%s", email)
    try:
        if client is not None:
            resp = client.post(settings.RESEND_API_URL, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=settings.EMAIL_TIMEOUT_SECONDS) as http:
                resp = http.post(settings.RESEND_API_URL, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EmailError(f"Falha ao contatar provedor de email: {exc}") from exc

    if resp.status_code >= 400:
        raise EmailError(f"Provedor de email respondeu {resp.status_code}: {resp.text}")

    result = resp.json()
    logger.info("welcome email sent to=%s result=%s", email, result)
    return result


def dispatch_welcome_email(*, email: str, name: str, company_name: str, plan: str) -> None:
    """
    Versão para BackgroundTasks: falha só vai para o log, sem retry.
    O parceiro já foi criado e não deve ser afetado.
    """
    try:
        send_welcome_email(email=email, name=name, company_name=company_name, plan=plan)
    except EmailError as exc:
        logger.error("welcome email failed to=%s error=%s", email, exc)
