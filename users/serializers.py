from rest_framework import serializers

from .models import User


class UserReadOnlySerializer(serializers.ModelSerializer):
    """Public profile with tournament statistics."""

    display_name = serializers.CharField(read_only=True)
    ranking_score = serializers.IntegerField(read_only=True)
    win_rate = serializers.FloatField(read_only=True)

    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "display_name",
            "profile_picture",
            "matches_played",
            "wins",
            "total_kills",
            "money_won",
            "ranking_score",
            "win_rate",
        )
        read_only_fields = fields


class UserSerializer(UserReadOnlySerializer):
    """The caller's own profile, including the wallet."""

    class Meta(UserReadOnlySerializer.Meta):
        fields = UserReadOnlySerializer.Meta.fields + (
            "email",
            "first_name",
            "last_name",
            "phone_number",
            "balance",
            "deposited_amount",
            "role",
            "registered_tournaments",
            "date_joined",
        )
        read_only_fields = (
            "id",
            "username",
            "email",
            "display_name",
            "matches_played",
            "wins",
            "total_kills",
            "money_won",
            "ranking_score",
            "win_rate",
            "balance",
            "deposited_amount",
            "role",
            "registered_tournaments",
            "date_joined",
        )
