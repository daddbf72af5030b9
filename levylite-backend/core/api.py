# core/api.py
from rest_framework.routers import DefaultRouter

from schemes.views import SchemeViewSet, LotViewSet, OwnerViewSet, LotOwnershipViewSet
from levies.views import LevyScheduleViewSet, LevyPeriodViewSet, LevyItemViewSet
from payments.views import PaymentViewSet

router = DefaultRouter(trailing_slash=False)
# Schemes
router.register(r"schemes", SchemeViewSet, basename="scheme")
router.register(r"lots", LotViewSet, basename="lot")
router.register(r"owners", OwnerViewSet, basename="owner")
router.register(r"lot-ownerships", LotOwnershipViewSet, basename="lot-ownership")
# Levies
router.register(r"levy-schedules", LevyScheduleViewSet, basename="levy-schedule")
router.register(r"levy-periods", LevyPeriodViewSet, basename="levy-period")
router.register(r"levy-items", LevyItemViewSet, basename="levy-item")
# Payments
router.register(r"payments", PaymentViewSet, basename="payment")
