# schemes/portal.py
"""
Owner portal access lifecycle.

    no_access --invite--> invited --accept--> accepted --activate--> activated
        ^                                                                |
        +------------------------------ reset ---------------------------+

`transition` is the only place the allowed moves are defined; the service
functions below apply it and stamp the matching timestamp. Timestamps are
written so that activated >= accepted >= invited always holds.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import signing
from django.db import transaction
from django.utils import timezone

from common.errors import NotFound, ValidationError
from emails.services import send_templated_email
from schemes.models import Owner, PortalState

logger = logging.getLogger(__name__)

INVITE_SALT = "levylite.owner-portal-invite"
MIN_PASSWORD_LENGTH = 8

INVITE, ACCEPT, ACTIVATE, RESET = "invite", "accept", "activate", "reset"

_TRANSITIONS = {
    (PortalState.NO_ACCESS, INVITE): PortalState.INVITED,
    (PortalState.INVITED, ACCEPT): PortalState.ACCEPTED,
    (PortalState.ACCEPTED, ACTIVATE): PortalState.ACTIVATED,
}


def transition(state, action) -> PortalState:
    """Return the state reached by applying `action` to `state`, or raise ValidationError."""
    if action == RESET:
        return PortalState.NO_ACCESS
    try:
        return _TRANSITIONS[(PortalState(state), action)]
    except (KeyError, ValueError):
        raise ValidationError(f"Cannot {action} owner portal access from state '{state}'")


def _not_before(earlier):
    now = timezone.now()
    if earlier and earlier > now:
        return earlier
    return now


def invite_max_age() -> timedelta:
    return timedelta(days=getattr(settings, "OWNER_INVITE_MAX_AGE_DAYS", 7))


def make_invite_token(owner: Owner) -> str:
    # Binding the send time means a reset + re-invite voids older links
    return signing.dumps(
        {"owner": owner.id, "sent": owner.portal_invite_sent_at.isoformat()},
        salt=INVITE_SALT,
    )


def activation_url(token: str) -> str:
    base = getattr(settings, "LEVYLITE_SITE_URL", "").rstrip("/")
    return f"{base}/owner/activate?token={token}"


def invite_owner(owner: Owner) -> str:
    """
    Move the owner to `invited`, issue a signed activation token and email it.
    Returns the token. Mail delivery is best-effort: an unconfigured mail
    setup leaves the invite in place with a skipped EmailLog row.
    """
    if not owner.email:
        raise ValidationError("Owner has no email address")

    with transaction.atomic():
        locked = Owner.objects.select_for_update().select_related("organisation").get(pk=owner.pk)
        locked.portal_status = transition(locked.portal_status, INVITE)
        locked.portal_invite_sent_at = timezone.now()
        locked.save(update_fields=["portal_status", "portal_invite_sent_at", "updated_at"])
        token = make_invite_token(locked)

    send_templated_email(
        "owner_portal_invite",
        to=locked.email,
        context={
            "owner_name": locked.display_name,
            "organisation_name": locked.organisation.name,
            "activation_url": activation_url(token),
            "expires_days": invite_max_age().days,
        },
        organisation=locked.organisation,
    )
    logger.info("Owner portal invite issued for owner %s", locked.id)
    _refresh(owner, locked)
    return token


def _resolve_portal_user(owner: Owner):
    User = get_user_model()
    if owner.portal_user_id:
        return owner.portal_user
    user = User.objects.filter(username__iexact=owner.email).first()
    if user is None:
        user = User(username=owner.email, email=owner.email)
        user.set_unusable_password()
        user.save()
        return user
    if Owner.objects.filter(portal_user=user).exclude(pk=owner.pk).exists():
        raise ValidationError("This email is already linked to another owner portal account")
    return user


def accept_invite(token: str) -> Owner:
    """Verify an activation token and link (or create) the owner's portal user."""
    try:
        payload = signing.loads(token, salt=INVITE_SALT, max_age=invite_max_age())
    except signing.SignatureExpired:
        raise ValidationError("This activation link has expired. Ask your strata manager for a new one.")
    except signing.BadSignature:
        raise ValidationError("Invalid activation link")

    with transaction.atomic():
        owner = Owner.objects.select_for_update().filter(pk=payload.get("owner")).first()
        if owner is None:
            raise NotFound("Owner not found")
        sent = owner.portal_invite_sent_at
        if sent is None or sent.isoformat() != payload.get("sent"):
            raise ValidationError("This activation link is no longer valid")

        owner.portal_status = transition(owner.portal_status, ACCEPT)
        owner.portal_user = _resolve_portal_user(owner)
        owner.portal_invite_accepted_at = _not_before(sent)
        owner.save(update_fields=["portal_status", "portal_user", "portal_invite_accepted_at", "updated_at"])
    return owner


def activate_owner(owner: Owner, password: str) -> Owner:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    with transaction.atomic():
        locked = Owner.objects.select_for_update().get(pk=owner.pk)
        locked.portal_status = transition(locked.portal_status, ACTIVATE)
        user = locked.portal_user
        if user is None:
            raise ValidationError("Owner has no portal account to activate")
        user.set_password(password)
        user.is_active = True
        user.save(update_fields=["password", "is_active"])
        locked.portal_activated_at = _not_before(locked.portal_invite_accepted_at)
        locked.save(update_fields=["portal_status", "portal_activated_at", "updated_at"])
    logger.info("Owner portal activated for owner %s", locked.id)
    _refresh(owner, locked)
    return owner


def reset_owner_portal(owner: Owner) -> Owner:
    """Return the owner to `no_access`, clearing the timestamps and the portal user link."""
    with transaction.atomic():
        locked = Owner.objects.select_for_update().get(pk=owner.pk)
        locked.portal_status = transition(locked.portal_status, RESET)
        locked.portal_user = None
        locked.portal_invite_sent_at = None
        locked.portal_invite_accepted_at = None
        locked.portal_activated_at = None
        locked.save(
            update_fields=[
                "portal_status",
                "portal_user",
                "portal_invite_sent_at",
                "portal_invite_accepted_at",
                "portal_activated_at",
                "updated_at",
            ]
        )
    _refresh(owner, locked)
    return owner


def _refresh(target: Owner, source: Owner):
    for field in (
        "portal_status",
        "portal_user_id",
        "portal_invite_sent_at",
        "portal_invite_accepted_at",
        "portal_activated_at",
    ):
        setattr(target, field, getattr(source, field))
