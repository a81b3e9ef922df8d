from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from html import escape
from typing import Any

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
    pass


class MailerNotConfigured(MailerError):
    pass


@dataclass(frozen=True)
class SendGridClient:
    api_key: str
    from_email: str
    from_name: str = "IMPGEO"
    base_url: str = "https://api.sendgrid.com"
    timeout_seconds: int = 20

    def send(self, payload: dict[str, Any], *, retries: int = 2) -> None:
        """POST /v3/mail/send. SendGrid answers 202 with an empty body."""
        url = self.base_url.rstrip("/") + "/v3/mail/send"
        body = json.dumps(payload).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=body, method="POST")
                req.add_header("Authorization", f"Bearer {self.api_key}")
                req.add_header("Content-Type", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    resp.read()
                    return
            except urllib.error.HTTPError as e:
                if e.code == 429 or e.code >= 500:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = e
                    continue
                try:
                    detail = e.read().decode("utf-8", errors="ignore")
                except Exception:
                    detail = ""
                raise MailerError(f"HTTP {e.code} from SendGrid: {detail[:300]}") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise MailerError(f"SendGrid request failed after retries: {last_err}")


def client_from_config(config: dict) -> SendGridClient:
    api_key = (config.get("SENDGRID_API_KEY") or "").strip()
    from_email = (config.get("SENDGRID_FROM_EMAIL") or "").strip()
    if not api_key or not from_email:
        raise MailerNotConfigured("SENDGRID_API_KEY and SENDGRID_FROM_EMAIL are required to send email.")
    return SendGridClient(
        api_key=api_key,
        from_email=from_email,
        from_name=(config.get("SENDGRID_FROM_NAME") or "IMPGEO").strip(),
    )


def reset_email_payload(
    client: SendGridClient,
    *,
    to_email: str,
    username: str,
    reset_url: str,
    expires_minutes: int,
    template_id: str | None = None,
) -> dict[str, Any]:
    sender = {"email": client.from_email, "name": client.from_name}
    if template_id:
        return {
            "from": sender,
            "template_id": template_id,
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                    "dynamic_template_data": {
                        "username": username,
                        "resetUrl": reset_url,
                        "expiresMinutes": expires_minutes,
                    },
                }
            ],
        }

    text = (
        f"Olá, {username}!\n\n"
        "Recebemos uma solicitação para redefinir a senha da sua conta IMPGEO.\n"
        f"Acesse o link abaixo para criar uma nova senha (válido por {expires_minutes} minutos):\n\n"
        f"{reset_url}\n\n"
        "Se você não solicitou a redefinição, ignore este email."
    )
    html = (
        f"<p>Olá, <strong>{escape(username)}</strong>!</p>"
        "<p>Recebemos uma solicitação para redefinir a senha da sua conta IMPGEO.</p>"
        f'<p><a href="{escape(reset_url, quote=True)}">Redefinir minha senha</a></p>'
        f"<p>Este link é válido por {expires_minutes} minutos.</p>"
        "<p>Se você não solicitou a redefinição, ignore este email.</p>"
    )
    return {
        "from": sender,
        "subject": "Recuperação de Senha - IMPGEO",
        "personalizations": [{"to": [{"email": to_email}]}],
        "content": [
            {"type": "text/plain", "value": text},
            {"type": "text/html", "value": html},
        ],
    }


def send_password_reset_email(config: dict, *, to_email: str, username: str, reset_url: str, expires_minutes: int) -> None:
    client = client_from_config(config)
    payload = reset_email_payload(
        client,
        to_email=to_email,
        username=username,
        reset_url=reset_url,
        expires_minutes=expires_minutes,
        template_id=(config.get("SENDGRID_TEMPLATE_ID_RESET") or "").strip() or None,
    )
    client.send(payload)
    logger.info("Password reset email sent to user=%s", username)
