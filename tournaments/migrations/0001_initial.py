import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Game",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100, unique=True)),
                ("image", models.URLField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("total_tournaments", models.PositiveIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name="Tournament",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tournament_id", models.CharField(max_length=40, unique=True)),
                ("title", models.CharField(max_length=200)),
                ("game_name", models.CharField(max_length=100)),
                ("image", models.URLField(blank=True)),
                ("map", models.CharField(max_length=100)),
                (
                    "mode",
                    models.CharField(
                        choices=[("Solo", "Solo"), ("Duo", "Duo"), ("Squad", "Squad"), ("Custom", "Custom")],
                        max_length=10,
                    ),
                ),
                (
                    "type",
                    models.CharField(choices=[("paid", "Paid"), ("free", "Free")], default="free", max_length=10),
                ),
                ("entry_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("per_kill", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("winning_prize", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_slots", models.PositiveIntegerField()),
                ("registered_slots", models.PositiveIntegerField(default=0)),
                ("date_time", models.DateTimeField()),
                ("room_id", models.CharField(blank=True, max_length=100)),
                ("room_password", models.CharField(blank=True, max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("upcoming", "Upcoming"),
                            ("ongoing", "Ongoing"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="upcoming",
                        max_length=10,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                ("rules", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_tournaments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "game",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tournaments",
                        to="tournaments.game",
                    ),
                ),
            ],
            options={
                "ordering": ["date_time"],
                "indexes": [
                    models.Index(fields=["status", "date_time"], name="tournament_status_time_idx"),
                    models.Index(fields=["game", "status"], name="tournament_game_status_idx"),
                    models.Index(fields=["type", "status"], name="tournament_type_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_slots__gte", 1)), name="tournament_total_slots_min_1"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("registered_slots__lte", models.F("total_slots"))),
                        name="tournament_registered_within_total",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("entry_fee__gte", 0)), name="tournament_entry_fee_non_negative"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Registration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_name", models.CharField(max_length=150)),
                ("game_id", models.CharField(max_length=100)),
                ("entry_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("winning_prize", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("per_kill", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                (
                    "mode",
                    models.CharField(
                        choices=[("Solo", "Solo"), ("Duo", "Duo"), ("Squad", "Squad"), ("Custom", "Custom")],
                        max_length=10,
                    ),
                ),
                ("start_time", models.DateTimeField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("admin_note", models.CharField(blank=True, max_length=255)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=10,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("wallet", "Wallet"), ("razorpay", "Razorpay"), ("free", "Free")],
                        default="free",
                        max_length=10,
                    ),
                ),
                ("transaction_reference", models.CharField(blank=True, max_length=64)),
                ("kills", models.PositiveIntegerField(default=0)),
                ("position", models.PositiveIntegerField(blank=True, null=True)),
                ("money_earned", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("result_proof", models.URLField(blank=True)),
                ("result_submitted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tournament",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="tournaments.tournament",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["user", "status"], name="registration_user_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("tournament", "user"), name="unique_registration_per_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TournamentResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kills", models.PositiveIntegerField(default=0)),
                ("position", models.PositiveIntegerField(default=0)),
                ("prize", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("is_winner", models.BooleanField(default=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tournament",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="tournaments.tournament",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tournament_results",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-kills", "position", "user_id"],
                "constraints": [
                    models.UniqueConstraint(fields=("tournament", "user"), name="unique_result_per_user"),
                ],
            },
        ),
    ]
