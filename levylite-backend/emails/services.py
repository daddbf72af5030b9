import logging
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import Template, Context
from django.utils import timezone

from .models import EmailTemplate, EmailLog, EmailStatus

logger = logging.getLogger(__name__)


def email_enabled() -> bool:
    return bool(getattr(settings, "EMAIL_ENABLED", False))


def render_template(text: str, context: dict) -> str:
    return Template(text).render(Context(context))


def send_templated_email(
    name: str,
    to: str,
    context: dict,
    locale: str = "en",
    attachments=None,
    organisation=None,
) -> EmailLog:
    """
    Render and send an email using a named template. Always logs the attempt.

    `attachments` is a list of (filename, content_bytes, mimetype) tuples.
    When mail is not configured the attempt is logged as skipped and nothing
    is sent; callers treat that as success.
    """
    template = (
        EmailTemplate.objects.filter(name=name, locale=locale, is_active=True)
        .order_by("-version")
        .first()
    )
    if not template:
        logger.error("Email template %s (%s) not found", name, locale)
        return EmailLog.objects.create(
            organisation=organisation,
            to_address=to,
            subject=f"[MISSING TEMPLATE] {name}",
            status=EmailStatus.FAILED,
            error_message="template not found",
            payload={"context": context},
        )

    subject = render_template(template.subject, context)
    html_body = render_template(template.html_body, context)

    log = EmailLog.objects.create(
        organisation=organisation,
        to_address=to,
        subject=subject,
        template=template,
        status=EmailStatus.QUEUED,
        payload={"context": context},
    )

    if not email_enabled():
        logger.warning("Email is not configured; skipping %s to %s", name, to)
        log.status = EmailStatus.SKIPPED
        log.save(update_fields=["status"])
        return log

    try:
        msg = EmailMultiAlternatives(
            subject=subject,
            body=html_body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            to=[to],
        )
        msg.attach_alternative(html_body, "text/html")
        for filename, content, mimetype in attachments or []:
            msg.attach(filename, content, mimetype)
        msg.send(fail_silently=False)

        log.status = EmailStatus.SENT
        log.sent_at = timezone.now()
        log.save(update_fields=["status", "sent_at"])
    except Exception as exc:
        logger.exception("Failed to send email to %s", to)
        log.status = EmailStatus.FAILED
        log.error_message = str(exc)
        log.save(update_fields=["status", "error_message"])

    return log
