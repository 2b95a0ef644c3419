from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import F, Q


class User(AbstractUser):
    """
    Player account and wallet.

    ``balance`` is only ever moved by ``wallet.services.Ledger`` through
    conditional updates; the check constraint is the store-level backstop.
    """

    class Role(models.TextChoices):
        USER = "user", "User"
        MODERATOR = "moderator", "Moderator"
        ADMIN = "admin", "Admin"

    email = models.EmailField(unique=True)
    phone_number = models.CharField(max_length=20, blank=True)
    profile_picture = models.URLField(blank=True)
    balance = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    deposited_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    money_won = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    matches_played = models.PositiveIntegerField(default=0)
    wins = models.PositiveIntegerField(default=0)
    total_kills = models.PositiveIntegerField(default=0)
    role = models.CharField(
        max_length=20, choices=Role.choices, default=Role.USER, db_index=True
    )
    is_banned = models.BooleanField(default=False)
    ban_reason = models.CharField(max_length=255, blank=True)
    registered_tournaments = models.ManyToManyField(
        "tournaments.Tournament", related_name="registered_users", blank=True
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0), name="user_balance_non_negative"
            ),
        ]
        indexes = [
            models.Index(fields=["is_active", "is_banned"], name="user_active_banned_idx"),
        ]

    def __str__(self):
        return self.username

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    @property
    def is_operator(self):
        return self.is_staff or self.role in (self.Role.MODERATOR, self.Role.ADMIN)

    @property
    def ranking_score(self):
        return self.wins * 10 + self.total_kills + self.matches_played * 2

    @property
    def win_rate(self):
        if not self.matches_played:
            return 0.0
        return round(self.wins / self.matches_played * 100, 1)


def ranking_score_expression():
    """ORM twin of ``User.ranking_score`` for leaderboard ordering."""
    return F("wins") * 10 + F("total_kills") + F("matches_played") * 2
