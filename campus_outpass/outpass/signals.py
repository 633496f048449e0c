import logging

from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth.signals import user_logged_in, user_login_failed

from .models import CustomUser, UserRole, AuditLog

logger = logging.getLogger(__name__)


def client_ip(request):
    if request is None:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


@receiver(post_save, sender=CustomUser)
def create_user_role(sender, instance, created, **kwargs):
    """
    Automatically create a UserRole for every new CustomUser.
    Superusers start as admins, everyone else as a student.
    """
    if created:
        default_role = UserRole.ADMIN if instance.is_superuser else UserRole.STUDENT
        UserRole.objects.get_or_create(user=instance, defaults={'role': default_role})


@receiver(user_logged_in)
def log_user_login(sender, request, user, **kwargs):
    AuditLog.objects.create(user=user, action="User Login", target="Session", ip_address=client_ip(request))


@receiver(user_login_failed)
def log_failed_login(sender, credentials, request=None, **kwargs):
    email = credentials.get('email') or credentials.get('username') or ''
    logger.warning("Failed login attempt for %s", email)
    AuditLog.objects.create(action="Failed Login", target=email[:255], ip_address=client_ip(request), status="failed")
