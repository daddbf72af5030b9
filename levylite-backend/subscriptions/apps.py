from django.apps import AppConfig
from django.db.models.signals import post_migrate


DEFAULT_PLANS = [
    {
        "code": "LEVYLITE_FREE",
        "name": "LevyLite Free",
        "description": "Small schemes getting started",
        "trial_days": 0,
        "max_lots": 10,
        "features": {"levy_notices": True, "document_storage": True},
    },
    {
        "code": "LEVYLITE_STANDARD",
        "name": "LevyLite Standard",
        "description": "Levy notices by email and the owner portal",
        "trial_days": 14,
        "max_lots": 500,
        "features": {
            "levy_notices": True,
            "email_notices": True,
            "owner_portal": True,
            "document_storage": True,
            "reports": True,
        },
    },
    {
        "code": "LEVYLITE_PROFESSIONAL",
        "name": "LevyLite Professional",
        "description": "Unlimited lots with bulk import",
        "trial_days": 14,
        "max_lots": None,
        "features": {
            "levy_notices": True,
            "email_notices": True,
            "owner_portal": True,
            "document_storage": True,
            "bulk_lot_import": True,
            "reports": True,
        },
    },
]


class SubscriptionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "subscriptions"
    verbose_name = "Subscriptions"

    def ready(self):
        # Import signals for auditing
        from . import signals  # noqa: F401

        def seed_default_plans(sender, **kwargs):
            from subscriptions.models import Plan

            for spec in DEFAULT_PLANS:
                defaults = dict(spec)
                code = defaults.pop("code")
                defaults["is_active"] = True
                Plan.objects.update_or_create(code=code, defaults=defaults)

        post_migrate.connect(seed_default_plans, sender=self)
