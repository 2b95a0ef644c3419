from rest_framework import permissions


class IsOperator(permissions.BasePermission):
    """
    Staff, moderators and admins. Operators run the back-office actions:
    tournament management, result corrections and withdrawal processing.
    """

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_operator)
