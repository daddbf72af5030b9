from django.db.models.signals import pre_save, post_save
from django.dispatch import receiver

from .models import Subscription, SubscriptionAudit


@receiver(pre_save, sender=Subscription)
def _subscription_snapshot(sender, instance: Subscription, **kwargs):
    if not instance.pk:
        return
    prev = Subscription.objects.filter(pk=instance.pk).values("status", "plan_id", "cancel_at_period_end").first()
    instance._prev_snapshot = prev


@receiver(post_save, sender=Subscription)
def _subscription_audit(sender, instance: Subscription, created: bool, **kwargs):
    if created:
        SubscriptionAudit.objects.create(
            organisation_id=instance.organisation_id,
            subscription=instance,
            action="created",
            metadata={
                "plan": instance.plan.code,
                "status": instance.status,
                "trial_end_at": instance.trial_end_at.isoformat() if instance.trial_end_at else None,
            },
        )
        return

    snap = getattr(instance, "_prev_snapshot", None)
    if not snap:
        return

    if snap["status"] != instance.status:
        SubscriptionAudit.objects.create(
            organisation_id=instance.organisation_id,
            subscription=instance,
            action="status_changed",
            metadata={"from": snap["status"], "to": instance.status},
        )

    if snap["plan_id"] != instance.plan_id:
        SubscriptionAudit.objects.create(
            organisation_id=instance.organisation_id,
            subscription=instance,
            action="plan_changed",
            metadata={"from": snap["plan_id"], "to": instance.plan_id},
        )

    if snap["cancel_at_period_end"] != instance.cancel_at_period_end:
        SubscriptionAudit.objects.create(
            organisation_id=instance.organisation_id,
            subscription=instance,
            action="cancel_at_period_end_changed",
            metadata={"from": snap["cancel_at_period_end"], "to": instance.cancel_at_period_end},
        )
