import logging

from drf_spectacular.utils import extend_schema
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from common.exceptions import ApplicationError, NotFound
from common.responses import StandardResultsSetPagination, success_response
from common.throttles import MediumThrottle, StrictThrottle, VeryStrictThrottle
from users.permissions import IsOperator

from .models import Transaction, WithdrawalRequest
from .serializers import (
    AdminTransactionSerializer,
    CreateWithdrawalRequestSerializer,
    GatewayDepositSerializer,
    TransactionSerializer,
    TransactionStatusSerializer,
    WithdrawalProcessSerializer,
    WithdrawalRejectSerializer,
    WithdrawalDecisionSerializer,
    WithdrawalRequestSerializer,
)
from .services import Ledger, WithdrawalService

logger = logging.getLogger(__name__)


class TransactionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    The caller's ledger. Operators see every user's transactions and may
    settle pending ones.
    """

    queryset = Transaction.objects.all()
    permission_classes = [IsAuthenticated]
    throttle_classes = [MediumThrottle]
    pagination_class = StandardResultsSetPagination

    def get_serializer_class(self):
        if self.request.user.is_authenticated and self.request.user.is_operator:
            return AdminTransactionSerializer
        return TransactionSerializer

    def get_queryset(self):
        qs = super().get_queryset().select_related("tournament")
        if not getattr(self.request.user, "is_operator", False):
            qs = qs.filter(user=self.request.user)
        else:
            user_id = self.request.query_params.get("user")
            if user_id:
                qs = qs.filter(user_id=user_id)
        for param in ("type", "status"):
            value = self.request.query_params.get(param)
            if value:
                qs = qs.filter(**{param: value})
        return qs.order_by("-created_at")

    def get_object(self):
        try:
            return self.get_queryset().get(pk=self.kwargs["pk"])
        except (Transaction.DoesNotExist, ValueError):
            raise NotFound("Transaction not found.")

    def retrieve(self, request, *args, **kwargs):
        return success_response(self.get_serializer(self.get_object()).data)

    @extend_schema(request=TransactionStatusSerializer, responses=AdminTransactionSerializer)
    @action(detail=True, methods=["patch"], url_path="status", permission_classes=[IsOperator])
    def set_status(self, request, pk=None):
        serializer = TransactionStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        txn = self.get_object()
        if WithdrawalRequest.objects.filter(transaction=txn).exists():
            raise ApplicationError(
                "This transaction holds a withdrawal request. Use the withdrawal review endpoints.",
                status_code=status.HTTP_409_CONFLICT,
            )
        txn = Ledger.set_status(
            txn,
            serializer.validated_data["status"],
            processed_by=request.user,
            reason=serializer.validated_data["reason"],
        )
        return success_response(
            AdminTransactionSerializer(txn).data,
            message=f"Transaction {txn.status}.",
        )


class GatewayDepositAPIView(generics.GenericAPIView):
    """
    Called by the payment gateway integration once a deposit is captured.
    Replays of the same ``external_reference`` are acknowledged without
    crediting again.
    """

    serializer_class = GatewayDepositSerializer
    permission_classes = [IsOperator]
    throttle_classes = [StrictThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        txn, created = Ledger.record_gateway_deposit(**serializer.validated_data)
        return success_response(
            TransactionSerializer(txn).data,
            message="Deposit recorded." if created else "Deposit already recorded.",
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class WithdrawalRequestAPIView(generics.ListCreateAPIView):
    permission_classes = [IsAuthenticated]
    pagination_class = StandardResultsSetPagination

    def get_serializer_class(self):
        if self.request.method == "POST":
            return CreateWithdrawalRequestSerializer
        return WithdrawalRequestSerializer

    def get_throttles(self):
        if self.request.method == "POST":
            self.throttle_classes = [VeryStrictThrottle]
        else:
            self.throttle_classes = [MediumThrottle]
        return super().get_throttles()

    def get_queryset(self):
        return WithdrawalRequest.objects.filter(user=self.request.user).select_related(
            "transaction"
        )

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        withdrawal_request = WithdrawalService.create_withdrawal_request(
            request.user, **serializer.validated_data
        )
        return success_response(
            WithdrawalRequestSerializer(withdrawal_request).data,
            message="Withdrawal request submitted successfully.",
            status=status.HTTP_201_CREATED,
        )


class AdminWithdrawalRequestViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    queryset = WithdrawalRequest.objects.select_related("user", "transaction")
    serializer_class = WithdrawalRequestSerializer
    permission_classes = [IsOperator]
    throttle_classes = [StrictThrottle]
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        qs = super().get_queryset()
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    @extend_schema(request=WithdrawalDecisionSerializer, responses=WithdrawalRequestSerializer)
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        serializer = WithdrawalDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        withdrawal = WithdrawalService.approve(
            WithdrawalService.get_request(pk),
            request.user,
            notes=serializer.validated_data["admin_notes"],
        )
        return success_response(
            WithdrawalRequestSerializer(withdrawal).data,
            message="Withdrawal request approved.",
        )

    @extend_schema(request=WithdrawalRejectSerializer, responses=WithdrawalRequestSerializer)
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = WithdrawalRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        withdrawal = WithdrawalService.reject(
            WithdrawalService.get_request(pk),
            request.user,
            serializer.validated_data["rejection_reason"],
            notes=serializer.validated_data["admin_notes"],
        )
        return success_response(
            WithdrawalRequestSerializer(withdrawal).data,
            message="Withdrawal request rejected and amount refunded.",
        )

    @extend_schema(request=WithdrawalProcessSerializer, responses=WithdrawalRequestSerializer)
    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):
        serializer = WithdrawalProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        withdrawal = WithdrawalService.process(
            WithdrawalService.get_request(pk),
            request.user,
            serializer.validated_data["payment_reference"],
            notes=serializer.validated_data["admin_notes"],
        )
        return success_response(
            WithdrawalRequestSerializer(withdrawal).data,
            message="Withdrawal processed.",
        )
