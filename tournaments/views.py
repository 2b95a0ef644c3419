from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated

from common.exceptions import NotRegistered
from common.responses import StandardResultsSetPagination, success_response
from common.throttles import MediumThrottle, RelaxedThrottle, StrictThrottle
from users.permissions import IsOperator

from .filters import TournamentFilter
from .models import Registration, Tournament, TournamentResult
from .serializers import (
    BulkResultUploadSerializer,
    RegisterSerializer,
    RegistrationSerializer,
    RegistrationStatusSerializer,
    ResultCorrectionSerializer,
    ResultSubmissionSerializer,
    TournamentCreateUpdateSerializer,
    TournamentListSerializer,
    TournamentReadOnlySerializer,
    TournamentResultSerializer,
)
from .services import (
    bulk_import_results,
    cancel_tournament,
    correct_result,
    create_tournament,
    get_tournament,
    rank_results,
    register_for_tournament,
    set_registration_status,
    submit_result,
    unregister_from_tournament,
    update_tournament,
)


def _leaderboard_payload(tournament):
    results = list(
        TournamentResult.objects.filter(tournament=tournament)
        .select_related("user")
        .order_by("-kills", "position", "user_id")
    )
    ranks = {result.pk: index for index, result in enumerate(results, start=1)}
    return TournamentResultSerializer(results, many=True, context={"ranks": ranks}).data


class TournamentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Player-facing tournament endpoints: browsing, registration and result
    self-submission.
    """

    queryset = Tournament.objects.filter(is_active=True).select_related("game")
    filter_backends = [DjangoFilterBackend]
    filterset_class = TournamentFilter
    pagination_class = StandardResultsSetPagination

    def get_serializer_class(self):
        if self.action == "list":
            return TournamentListSerializer
        return TournamentReadOnlySerializer

    def get_permissions(self):
        if self.action in ["list", "retrieve", "leaderboard"]:
            return [AllowAny()]
        return [IsAuthenticated()]

    def get_throttles(self):
        if self.action in ["register", "results"]:
            self.throttle_classes = [StrictThrottle]
        elif self.action in ["list", "retrieve"]:
            self.throttle_classes = [MediumThrottle]
        else:
            self.throttle_classes = [RelaxedThrottle]
        return super().get_throttles()

    def retrieve(self, request, *args, **kwargs):
        tournament = get_tournament(kwargs["pk"])
        serializer = self.get_serializer(tournament)
        return success_response(serializer.data)

    @extend_schema(request=RegisterSerializer, responses=RegistrationSerializer)
    @action(detail=True, methods=["post", "delete"])
    def register(self, request, pk=None):
        """
        POST registers the caller (charging the entry fee for paid
        tournaments); DELETE withdraws the registration before the start.
        """
        if request.method == "DELETE":
            unregister_from_tournament(request.user, pk)
            return success_response(message="Successfully unregistered from tournament.")

        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = register_for_tournament(
            request.user, pk, serializer.validated_data["game_id"]
        )
        return success_response(
            RegistrationSerializer(registration).data,
            message="Successfully registered for tournament.",
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["get"])
    def registration(self, request, pk=None):
        registration = (
            Registration.objects.select_related("tournament")
            .filter(tournament_id=get_tournament(pk).pk, user=request.user)
            .first()
        )
        if registration is None:
            raise NotRegistered()
        return success_response(RegistrationSerializer(registration).data)

    @extend_schema(request=ResultSubmissionSerializer, responses=RegistrationSerializer)
    @action(detail=True, methods=["put"])
    def results(self, request, pk=None):
        serializer = ResultSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = submit_result(
            request.user,
            pk,
            serializer.validated_data["kills"],
            serializer.validated_data["position"],
            serializer.validated_data["proof"],
        )
        return success_response(
            RegistrationSerializer(registration).data,
            message="Result submitted successfully.",
        )

    @action(detail=True, methods=["get"])
    def leaderboard(self, request, pk=None):
        return success_response(_leaderboard_payload(get_tournament(pk)))

    @action(detail=False, methods=["get"])
    def history(self, request):
        """The caller's registrations, newest first."""
        queryset = (
            Registration.objects.filter(user=request.user)
            .select_related("tournament")
            .order_by("-created_at")
        )
        status_filter = request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(RegistrationSerializer(page, many=True).data)


class AdminTournamentViewSet(
    mixins.ListModelMixin, viewsets.GenericViewSet
):
    """
    Operator back-office for tournaments.
    """

    queryset = Tournament.objects.select_related("game").order_by("-created_at")
    permission_classes = [IsOperator]
    filter_backends = [DjangoFilterBackend]
    filterset_class = TournamentFilter
    pagination_class = StandardResultsSetPagination
    serializer_class = TournamentReadOnlySerializer

    def get_throttles(self):
        self.throttle_classes = [RelaxedThrottle]
        return super().get_throttles()

    @extend_schema(request=TournamentCreateUpdateSerializer, responses=TournamentReadOnlySerializer)
    def create(self, request):
        serializer = TournamentCreateUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tournament = create_tournament(created_by=request.user, **serializer.validated_data)
        return success_response(
            TournamentReadOnlySerializer(tournament, context={"request": request}).data,
            message="Tournament created successfully.",
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(request=TournamentCreateUpdateSerializer, responses=TournamentReadOnlySerializer)
    def partial_update(self, request, pk=None):
        tournament = get_tournament(pk)
        serializer = TournamentCreateUpdateSerializer(tournament, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        tournament = update_tournament(tournament.pk, **serializer.validated_data)
        return success_response(
            TournamentReadOnlySerializer(tournament, context={"request": request}).data,
            message="Tournament updated successfully.",
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        tournament, refunded = cancel_tournament(pk, cancelled_by=request.user)
        return success_response(
            {
                "tournament": TournamentReadOnlySerializer(
                    tournament, context={"request": request}
                ).data,
                "refunded_count": refunded,
            },
            message="Tournament cancelled.",
        )

    @action(detail=True, methods=["get"])
    def registrations(self, request, pk=None):
        queryset = (
            Registration.objects.filter(tournament=get_tournament(pk))
            .select_related("tournament")
            .order_by("created_at")
        )
        status_filter = request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(RegistrationSerializer(page, many=True).data)

    @extend_schema(request=ResultCorrectionSerializer, responses=RegistrationSerializer)
    @action(detail=True, methods=["put"], url_path=r"results/(?P<user_id>[^/.]+)")
    def update_result(self, request, pk=None, user_id=None):
        serializer = ResultCorrectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = correct_result(
            pk,
            user_id,
            serializer.validated_data["kills"],
            serializer.validated_data["position"],
            serializer.validated_data["proof"],
        )
        return success_response(
            RegistrationSerializer(registration).data, message="Result updated."
        )

    @extend_schema(request=BulkResultUploadSerializer)
    @action(
        detail=True,
        methods=["post"],
        url_path="bulk-results",
        parser_classes=[MultiPartParser, FormParser],
    )
    def bulk_results(self, request, pk=None):
        serializer = BulkResultUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = bulk_import_results(pk, serializer.validated_data["file"])
        return success_response(
            summary,
            message=f"Updated {summary['updated_count']} results.",
        )

    @action(detail=True, methods=["post"], url_path="rank-results", parser_classes=[JSONParser])
    def rank(self, request, pk=None):
        winners = rank_results(pk)
        return success_response(
            {
                "winners": [result.user_id for result in winners],
                "leaderboard": _leaderboard_payload(get_tournament(pk)),
            },
            message="Results ranked.",
        )


class AdminRegistrationViewSet(viewsets.GenericViewSet):
    queryset = Registration.objects.select_related("tournament", "user")
    permission_classes = [IsOperator]

    @extend_schema(request=RegistrationStatusSerializer, responses=RegistrationSerializer)
    @action(detail=True, methods=["put"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = RegistrationStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = set_registration_status(
            pk,
            serializer.validated_data["status"],
            serializer.validated_data["admin_note"],
        )
        return success_response(
            RegistrationSerializer(registration).data,
            message=f"Registration {registration.status}.",
        )
