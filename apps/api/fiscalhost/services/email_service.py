"""Templated transactional emails."""

import html
import logging
import re
from dataclasses import dataclass

from fiscalhost.core.structured_logging import build_log_context
from fiscalhost.services import platform_email_service

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


class EmailDeliveryError(Exception):
    """The email provider did not accept the message."""


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    body: str


TEMPLATES: dict[str, EmailTemplate] = {
    "confirm-guest-account": EmailTemplate(
        subject="Verify your email to create your account",
        body=(
            "<p>Hi,</p>"
            "<p>Please confirm that you own <strong>{{email}}</strong> to turn your "
            "contributions into a full account.</p>"
            '<p><a href="{{verifyAccountLink}}">Verify my email</a></p>'
            "<p>If you didn't request this, you can safely ignore this email.</p>"
        ),
    ),
}


def render_template(
    subject: str,
    body: str,
    variables: dict[str, str],
) -> tuple[str, str]:
    """
    Render a template with variable substitution.

    Variables in format {{variable_name}} are replaced with values (HTML
    escaped in the body). Missing variables are replaced with empty string.

    Returns (rendered_subject, rendered_body).
    """
    def replace_subject_var(match: re.Match) -> str:
        return variables.get(match.group(1), "")

    def replace_body_var(match: re.Match) -> str:
        return html.escape(variables.get(match.group(1), ""))

    rendered_subject = VARIABLE_PATTERN.sub(replace_subject_var, subject)
    rendered_body = VARIABLE_PATTERN.sub(replace_body_var, body)
    return rendered_subject, rendered_body


async def send(template_name: str, to_email: str, variables: dict[str, str]) -> str | None:
    """
    Render ``template_name`` and send it to ``to_email``.

    No retry or fallback happens here beyond the provider client's own.

    Returns:
        Provider message id, if any

    Raises:
        KeyError: Unknown template
        EmailDeliveryError: Provider rejected the message
    """
    template = TEMPLATES[template_name]
    subject, body = render_template(template.subject, template.body, variables)

    result = await platform_email_service.send_platform_email(
        to_email=to_email,
        subject=subject,
        html=body,
    )
    if not result.get("success"):
        raise EmailDeliveryError(result.get("error") or "Email send failed")

    logger.info(
        "Sent %s email",
        template_name,
        extra=build_log_context(email=to_email),
    )
    return result.get("message_id")
