from django.apps import AppConfig


class LeviesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "levies"
    verbose_name = "Levies"
