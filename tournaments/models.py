from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from .managers import TournamentManager


class Game(models.Model):
    name = models.CharField(max_length=100, unique=True)
    image = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)
    total_tournaments = models.PositiveIntegerField(default=0)

    def __str__(self):
        return self.name


class Tournament(models.Model):
    class Mode(models.TextChoices):
        SOLO = "Solo", "Solo"
        DUO = "Duo", "Duo"
        SQUAD = "Squad", "Squad"
        CUSTOM = "Custom", "Custom"

    class Type(models.TextChoices):
        PAID = "paid", "Paid"
        FREE = "free", "Free"

    class Status(models.TextChoices):
        UPCOMING = "upcoming", "Upcoming"
        ONGOING = "ongoing", "Ongoing"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    tournament_id = models.CharField(max_length=40, unique=True)
    title = models.CharField(max_length=200)
    game = models.ForeignKey(Game, on_delete=models.PROTECT, related_name="tournaments")
    game_name = models.CharField(max_length=100)
    image = models.URLField(blank=True)
    map = models.CharField(max_length=100)
    mode = models.CharField(max_length=10, choices=Mode.choices)
    type = models.CharField(max_length=10, choices=Type.choices, default=Type.FREE)
    entry_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    per_kill = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    winning_prize = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_slots = models.PositiveIntegerField()
    registered_slots = models.PositiveIntegerField(default=0)
    date_time = models.DateTimeField()
    room_id = models.CharField(max_length=100, blank=True)
    room_password = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.UPCOMING
    )
    description = models.TextField(blank=True)
    rules = models.JSONField(default=list, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_tournaments",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TournamentManager()

    class Meta:
        ordering = ["date_time"]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_slots__gte=1), name="tournament_total_slots_min_1"
            ),
            models.CheckConstraint(
                condition=Q(registered_slots__lte=F("total_slots")),
                name="tournament_registered_within_total",
            ),
            models.CheckConstraint(
                condition=Q(entry_fee__gte=0), name="tournament_entry_fee_non_negative"
            ),
        ]
        indexes = [
            models.Index(fields=["status", "date_time"], name="tournament_status_time_idx"),
            models.Index(fields=["game", "status"], name="tournament_game_status_idx"),
            models.Index(fields=["type", "status"], name="tournament_type_status_idx"),
        ]

    def __str__(self):
        return self.title

    @property
    def slots_left(self):
        return self.total_slots - self.registered_slots

    @property
    def is_full(self):
        return self.registered_slots >= self.total_slots

    @property
    def is_paid(self):
        return self.type == self.Type.PAID and self.entry_fee > 0

    @property
    def can_register(self):
        return self.status == self.Status.UPCOMING and not self.is_full and self.is_active


class Registration(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        REJECTED = "rejected", "Rejected"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    class PaymentMethod(models.TextChoices):
        WALLET = "wallet", "Wallet"
        RAZORPAY = "razorpay", "Razorpay"
        FREE = "free", "Free"

    tournament = models.ForeignKey(
        Tournament, on_delete=models.CASCADE, related_name="registrations"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="registrations"
    )
    user_name = models.CharField(max_length=150)
    game_id = models.CharField(max_length=100)
    entry_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    winning_prize = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    per_kill = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    mode = models.CharField(max_length=10, choices=Tournament.Mode.choices)
    start_time = models.DateTimeField()
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    admin_note = models.CharField(max_length=255, blank=True)
    payment_status = models.CharField(
        max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    payment_method = models.CharField(
        max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.FREE
    )
    transaction_reference = models.CharField(max_length=64, blank=True)
    kills = models.PositiveIntegerField(default=0)
    position = models.PositiveIntegerField(null=True, blank=True)
    money_earned = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    result_proof = models.URLField(blank=True)
    result_submitted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["tournament", "user"], name="unique_registration_per_user"
            ),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="registration_user_status_idx"),
        ]

    def __str__(self):
        return f"{self.user_name} in {self.tournament_id}"

    @property
    def has_result(self):
        return self.result_submitted_at is not None


class TournamentResult(models.Model):
    """One entry of a tournament's results map, keyed by user."""

    tournament = models.ForeignKey(
        Tournament, on_delete=models.CASCADE, related_name="results"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tournament_results"
    )
    kills = models.PositiveIntegerField(default=0)
    position = models.PositiveIntegerField(default=0)
    prize = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_winner = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-kills", "position", "user_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["tournament", "user"], name="unique_result_per_user"
            ),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.kills} kills, #{self.position}"
