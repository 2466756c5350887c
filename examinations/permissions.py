from rest_framework import permissions


class IsOwnerOrExaminer(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        if is_examiner(request.user):
            return True
        if hasattr(obj, 'user_id'):
            return obj.user_id == request.user.id
        return False


class IsExaminer(permissions.BasePermission):
    message = "Only examiners can perform this action."

    def has_permission(self, request, view):
        return is_examiner(request.user)


def is_examiner(user):
    return bool(user and user.is_authenticated and user.is_staff)
