from django.apps import AppConfig


class OutpassConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'outpass'
    verbose_name = 'Campus Outpass'

    def ready(self):
        import outpass.signals
