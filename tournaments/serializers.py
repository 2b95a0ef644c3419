import csv
import io

from rest_framework import serializers

from .models import Game, Registration, Tournament, TournamentResult

BULK_RESULT_COLUMNS = ("email", "kills", "position", "screenshotProof")


class GameSerializer(serializers.ModelSerializer):
    class Meta:
        model = Game
        fields = ("id", "name", "image", "is_active", "total_tournaments")
        read_only_fields = fields


class TournamentListSerializer(serializers.ModelSerializer):
    slots_left = serializers.IntegerField(read_only=True)

    class Meta:
        model = Tournament
        fields = (
            "id",
            "tournament_id",
            "title",
            "game",
            "game_name",
            "image",
            "map",
            "mode",
            "type",
            "entry_fee",
            "per_kill",
            "winning_prize",
            "total_slots",
            "registered_slots",
            "slots_left",
            "date_time",
            "status",
        )
        read_only_fields = fields


class TournamentReadOnlySerializer(TournamentListSerializer):
    """
    Full tournament view. Room credentials are only shown to operators and
    to players whose registration has been confirmed.
    """

    room_id = serializers.SerializerMethodField()
    room_password = serializers.SerializerMethodField()
    is_registered = serializers.SerializerMethodField()

    class Meta(TournamentListSerializer.Meta):
        fields = TournamentListSerializer.Meta.fields + (
            "description",
            "rules",
            "room_id",
            "room_password",
            "is_registered",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def _registration(self, obj):
        request = self.context.get("request")
        if not request or not request.user.is_authenticated:
            return None
        cache = self.context.setdefault("_registrations", {})
        if obj.pk not in cache:
            cache[obj.pk] = Registration.objects.filter(
                tournament=obj, user=request.user
            ).first()
        return cache[obj.pk]

    def _can_see_room(self, obj):
        request = self.context.get("request")
        if request and request.user.is_authenticated and request.user.is_operator:
            return True
        registration = self._registration(obj)
        return bool(registration and registration.status == Registration.Status.CONFIRMED)

    def get_room_id(self, obj):
        return obj.room_id if self._can_see_room(obj) else None

    def get_room_password(self, obj):
        return obj.room_password if self._can_see_room(obj) else None

    def get_is_registered(self, obj):
        return self._registration(obj) is not None


class TournamentCreateUpdateSerializer(serializers.ModelSerializer):
    """Operator input for creating and editing tournaments."""

    game = serializers.PrimaryKeyRelatedField(queryset=Game.objects.all())
    winning_prize = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    rules = serializers.ListField(
        child=serializers.CharField(max_length=500), required=False
    )

    class Meta:
        model = Tournament
        fields = (
            "title",
            "game",
            "image",
            "map",
            "mode",
            "type",
            "entry_fee",
            "per_kill",
            "winning_prize",
            "total_slots",
            "date_time",
            "room_id",
            "room_password",
            "description",
            "rules",
            "is_active",
        )
        extra_kwargs = {
            "total_slots": {"min_value": 1},
            "entry_fee": {"min_value": 0},
            "per_kill": {"min_value": 0},
        }

    def validate(self, attrs):
        instance = self.instance
        tournament_type = attrs.get("type", getattr(instance, "type", Tournament.Type.FREE))
        entry_fee = attrs.get("entry_fee", getattr(instance, "entry_fee", 0))
        if tournament_type == Tournament.Type.FREE and entry_fee and entry_fee > 0:
            raise serializers.ValidationError(
                {"entry_fee": "Free tournaments cannot charge an entry fee."}
            )
        return attrs


class RegistrationSerializer(serializers.ModelSerializer):
    tournament_title = serializers.CharField(source="tournament.title", read_only=True)
    tournament_status = serializers.CharField(source="tournament.status", read_only=True)

    class Meta:
        model = Registration
        fields = (
            "id",
            "tournament",
            "tournament_title",
            "tournament_status",
            "user",
            "user_name",
            "game_id",
            "entry_fee",
            "winning_prize",
            "per_kill",
            "mode",
            "start_time",
            "status",
            "admin_note",
            "payment_status",
            "payment_method",
            "transaction_reference",
            "kills",
            "position",
            "money_earned",
            "result_proof",
            "result_submitted_at",
            "created_at",
        )
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    game_id = serializers.CharField(max_length=100, allow_blank=True, trim_whitespace=True)


class ResultSubmissionSerializer(serializers.Serializer):
    kills = serializers.IntegerField(min_value=0)
    position = serializers.IntegerField(min_value=1)
    proof = serializers.URLField(required=False, allow_blank=True, default="")


class ResultCorrectionSerializer(serializers.Serializer):
    kills = serializers.IntegerField(min_value=0)
    position = serializers.IntegerField(min_value=1)
    proof = serializers.URLField(required=False, allow_blank=True, allow_null=True, default=None)


class RegistrationStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=(Registration.Status.CONFIRMED, Registration.Status.REJECTED)
    )
    admin_note = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class BulkResultUploadSerializer(serializers.Serializer):
    """
    Accepts a CSV upload with the columns ``email, kills, position,
    screenshotProof`` and turns it into result rows.
    """

    file = serializers.FileField()

    def validate_file(self, value):
        try:
            content = value.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise serializers.ValidationError("File must be UTF-8 encoded CSV.")

        reader = csv.DictReader(io.StringIO(content))
        headers = [header.strip() for header in reader.fieldnames or []]
        missing = [column for column in ("email", "kills", "position") if column not in headers]
        if missing:
            raise serializers.ValidationError(
                f"Missing CSV columns: {', '.join(missing)}."
            )

        rows = []
        for raw in reader:
            row = {(key or "").strip(): (val or "").strip() for key, val in raw.items()}
            if not any(row.values()):
                continue
            rows.append({column: row.get(column, "") for column in BULK_RESULT_COLUMNS})
        if not rows:
            raise serializers.ValidationError("The CSV file contains no rows.")
        return rows


class TournamentResultSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    rank = serializers.SerializerMethodField()

    class Meta:
        model = TournamentResult
        fields = ("rank", "user", "username", "kills", "position", "prize", "is_winner")
        read_only_fields = fields

    def get_rank(self, obj):
        ranks = self.context.get("ranks", {})
        return ranks.get(obj.pk)
