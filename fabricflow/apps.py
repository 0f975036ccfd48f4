from django.apps import AppConfig


class FabricflowConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fabricflow'
    verbose_name = 'Roll lifecycle'

    def ready(self):
        # Import signal handlers
        from . import signals  # noqa: F401
