import re

from django.conf import settings
from rest_framework import serializers

from .models import Transaction, WithdrawalRequest

IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
UPI_PATTERN = re.compile(r"^[\w.\-]{2,}@[A-Za-z]{2,}$")


class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = (
            "id",
            "user",
            "user_name",
            "type",
            "amount",
            "status",
            "description",
            "tournament",
            "payment_method",
            "reference",
            "external_reference",
            "failure_reason",
            "processed_at",
            "created_at",
        )
        read_only_fields = fields


class AdminTransactionSerializer(TransactionSerializer):
    class Meta(TransactionSerializer.Meta):
        fields = TransactionSerializer.Meta.fields + (
            "gateway_response",
            "admin_notes",
            "processed_by",
        )
        read_only_fields = fields


class TransactionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Transaction.TERMINAL_STATUSES)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class GatewayDepositSerializer(serializers.Serializer):
    """Payment-gateway callback payload for a captured deposit."""

    user_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    external_reference = serializers.CharField(max_length=255)
    gateway_response = serializers.JSONField(required=False, allow_null=True, default=None)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be positive.")
        return value


class WithdrawalRequestSerializer(serializers.ModelSerializer):
    transaction_reference = serializers.CharField(
        source="transaction.reference", read_only=True, default=None
    )

    class Meta:
        model = WithdrawalRequest
        fields = (
            "id",
            "user",
            "user_name",
            "amount",
            "account_number",
            "ifsc_code",
            "account_holder_name",
            "bank_name",
            "upi_id",
            "status",
            "transaction_reference",
            "admin_notes",
            "rejection_reason",
            "payment_reference",
            "processed_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class CreateWithdrawalRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    account_number = serializers.CharField(max_length=34, required=False, allow_blank=True, default="")
    ifsc_code = serializers.CharField(max_length=11, required=False, allow_blank=True, default="")
    account_holder_name = serializers.CharField(
        max_length=150, required=False, allow_blank=True, default=""
    )
    bank_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    upi_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")

    def validate_amount(self, value):
        if value < settings.MINIMUM_WITHDRAWAL_AMOUNT:
            raise serializers.ValidationError(
                f"Minimum withdrawal amount is {settings.MINIMUM_WITHDRAWAL_AMOUNT}."
            )
        return value

    def validate_account_number(self, value):
        if value and not value.isdigit():
            raise serializers.ValidationError("Account number must contain only digits.")
        return value

    def validate_ifsc_code(self, value):
        value = value.upper()
        if value and not IFSC_PATTERN.match(value):
            raise serializers.ValidationError("Invalid IFSC code.")
        return value

    def validate_upi_id(self, value):
        if value and not UPI_PATTERN.match(value):
            raise serializers.ValidationError("Invalid UPI ID.")
        return value

    def validate(self, attrs):
        if attrs.get("account_number"):
            missing = [
                field
                for field in ("ifsc_code", "account_holder_name")
                if not attrs.get(field)
            ]
            if missing:
                raise serializers.ValidationError(
                    {field: "Required with bank account details." for field in missing}
                )
        elif not attrs.get("upi_id"):
            raise serializers.ValidationError("Either bank details or UPI ID is required.")
        return attrs


class WithdrawalDecisionSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(required=False, allow_blank=True, default="")


class WithdrawalRejectSerializer(WithdrawalDecisionSerializer):
    rejection_reason = serializers.CharField(max_length=255)


class WithdrawalProcessSerializer(WithdrawalDecisionSerializer):
    payment_reference = serializers.CharField(max_length=255)
