# examdesk_platform/assessments/permissions.py
from rest_framework import permissions


def is_exam_staff(user):
    """Staff, superusers and the admin/examiner roles can see every result."""
    if not user or not user.is_authenticated:
        return False
    return (
        user.is_staff or
        getattr(user, 'role', '') in ['examiner', 'admin']
    )


class IsExamStaff(permissions.BasePermission):
    """
    Allows access to Admins and Examiners.
    Strictly blocks Students.
    """
    def has_permission(self, request, view):
        return is_exam_staff(request.user)
