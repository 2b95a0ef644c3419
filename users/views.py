from rest_framework import generics
from rest_framework.permissions import AllowAny, IsAuthenticated

from common.responses import StandardResultsSetPagination, success_response
from common.throttles import MediumThrottle, RelaxedThrottle

from .models import User, ranking_score_expression
from .serializers import UserReadOnlySerializer, UserSerializer


class CurrentUserView(generics.RetrieveUpdateAPIView):
    """
    The caller's profile, wallet balance and statistics. Only the personal
    details are editable; balances move through the ledger.
    """

    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated]
    throttle_classes = [MediumThrottle]
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        return User.objects.prefetch_related("registered_tournaments").get(
            pk=self.request.user.pk
        )

    def retrieve(self, request, *args, **kwargs):
        return success_response(self.get_serializer(self.get_object()).data)

    def update(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success_response(serializer.data, message="Profile updated.")


class LeaderboardView(generics.ListAPIView):
    serializer_class = UserReadOnlySerializer
    permission_classes = [AllowAny]
    throttle_classes = [RelaxedThrottle]
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return (
            User.objects.filter(is_active=True, is_banned=False)
            .annotate(score=ranking_score_expression())
            .order_by("-score", "-wins", "id")
        )
