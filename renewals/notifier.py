"""Renewal reminder delivery.

One email per subscription: a plain-text and an HTML variant embedding the
subscription id, the expiry date rendered for the configured locale and a
renewal link. Delivery happens in a single provider call; failures surface
as ``NotifyError`` and are never retried here.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from string import Template
from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError

from renewals.schemas import SubscriptionRecord


logger = logging.getLogger(__name__)

SUBJECT = "Última oportunidad de renovación"

TEXT_TEMPLATE = Template(
    "Tu suscripción (ID: $subscription_id) expirará el $expires_on. "
    "Renueva ahora para continuar disfrutando de nuestros servicios."
)

HTML_TEMPLATE = Template(
    """<html>
  <body>
    <h2>Tu suscripción está por expirar</h2>
    <p>Estimado cliente,</p>
    <p>Tu suscripción (ID: <strong>$subscription_id</strong>) expirará el <strong>$expires_on</strong>.</p>
    <p>Renueva ahora para continuar disfrutando de nuestros servicios sin interrupciones.</p>
    <a href="$renew_link" style="background-color: #4CAF50; color: white; padding: 10px 15px; text-decoration: none; border-radius: 5px;">Renovar ahora</a>
    <p>Si tienes alguna pregunta, no dudes en contactarnos.</p>
    <p>Saludos cordiales,<br>El equipo de soporte</p>
  </body>
</html>
"""
)

DATE_FORMATS = {
    "es-ES": "{day}/{month}/{year}",
    "en-US": "{month}/{day}/{year}",
    "en-GB": "{day:02d}/{month:02d}/{year}",
    "de-DE": "{day}.{month}.{year}",
}


class NotifyError(RuntimeError):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class Notifier(Protocol):
    def send(self, record: SubscriptionRecord) -> None: ...


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    text: str
    html: str


def format_expiry(expires_at: str, locale: str) -> str:
    try:
        instant = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
    except ValueError:
        return expires_at
    if instant.tzinfo is not None:
        instant = instant.astimezone(UTC)
    pattern = DATE_FORMATS.get(locale)
    if pattern is None:
        return instant.date().isoformat()
    return pattern.format(day=instant.day, month=instant.month, year=instant.year)


def render_message(record: SubscriptionRecord, *, locale: str, renew_url: str) -> RenderedMessage:
    substitutions = {
        "subscription_id": record.subscription_id,
        "expires_on": format_expiry(record.expires_at, locale),
        "renew_link": f"{renew_url}?id={record.subscription_id}",
    }
    return RenderedMessage(
        subject=SUBJECT,
        text=TEXT_TEMPLATE.safe_substitute(substitutions),
        html=HTML_TEMPLATE.safe_substitute(substitutions),
    )


class SesNotifier:
    """Send reminders through Amazon SES; the client handle is shared and never mutated."""

    def __init__(self, ses_client, sender_email: str, *, locale: str = "es-ES", renew_url: str) -> None:
        self.ses_client = ses_client
        self.sender_email = sender_email
        self.locale = locale
        self.renew_url = renew_url

    def send(self, record: SubscriptionRecord) -> None:
        message = render_message(record, locale=self.locale, renew_url=self.renew_url)
        try:
            self.ses_client.send_email(
                Source=self.sender_email,
                Destination={"ToAddresses": [record.subject_id]},
                Message={
                    "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                    "Body": {
                        "Text": {"Data": message.text, "Charset": "UTF-8"},
                        "Html": {"Data": message.html, "Charset": "UTF-8"},
                    },
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise NotifyError(str(exc), exc) from exc

        logger.debug("renewal reminder sent", extra={"subscription_id": record.subscription_id})
