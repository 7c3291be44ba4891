from django.apps import AppConfig


class DocumentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'documents'

    def ready(self):
        """Register the structured layouts shipped in the reports package."""
        import reports  # noqa: F401
