from rest_framework.permissions import BasePermission

from .models import UserRole


def get_role(user):
    if not user or not user.is_authenticated:
        return None
    if hasattr(user, 'userrole'):
        return user.userrole.role
    return UserRole.ADMIN if user.is_superuser else None


def is_admin(user):
    return bool(user and user.is_authenticated and (user.is_superuser or get_role(user) == UserRole.ADMIN))


def is_faculty(user):
    return get_role(user) in UserRole.FACULTY_ROLES


class HasRole(BasePermission):
    roles = ()
    message = 'You do not have access to this area.'

    def has_permission(self, request, view):
        return get_role(request.user) in self.roles


class IsStudent(HasRole):
    roles = (UserRole.STUDENT,)
    message = 'Only students can access this resource.'


class IsFaculty(HasRole):
    roles = UserRole.FACULTY_ROLES
    message = 'Only faculty members can access this resource.'


class IsHod(HasRole):
    roles = (UserRole.HOD,)
    message = 'Only the Head of Department can access this resource.'


class IsSecurity(HasRole):
    roles = (UserRole.SECURITY,)
    message = 'Only security staff can access this resource.'


class IsAdminRole(BasePermission):
    message = 'Only administrators can access this resource.'

    def has_permission(self, request, view):
        return is_admin(request.user)
