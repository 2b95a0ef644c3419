from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import (
    AdminWithdrawalRequestViewSet,
    GatewayDepositAPIView,
    TransactionViewSet,
    WithdrawalRequestAPIView,
)

router = SimpleRouter()
router.register(r"transactions", TransactionViewSet, basename="transaction")
router.register(
    r"admin/withdrawal-requests",
    AdminWithdrawalRequestViewSet,
    basename="admin-withdrawal-request",
)


urlpatterns = [
    path("", include(router.urls)),
    path("deposits/", GatewayDepositAPIView.as_view(), name="gateway-deposit"),
    path(
        "withdrawal-requests/",
        WithdrawalRequestAPIView.as_view(),
        name="withdrawal-requests",
    ),
]
