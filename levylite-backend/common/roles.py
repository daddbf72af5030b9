from django.db import models

class OrgRole(models.TextChoices):
    MANAGER = "manager", "Manager"
    ADMIN   = "admin",   "Admin"
    AUDITOR = "auditor", "Auditor"
