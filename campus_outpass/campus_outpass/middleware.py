from datetime import timedelta

from django.utils import timezone


class UpdateLastActivityMiddleware:
    """
    Keeps last_login fresh so the admin dashboard can count active users.
    DRF authenticates inside the view and copies the user back onto the
    Django request, so token clients are covered too.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            now = timezone.now()
            # at most one write per minute per user
            if not user.last_login or user.last_login < now - timedelta(minutes=1):
                user.last_login = now
                user.save(update_fields=['last_login'])

        return response
