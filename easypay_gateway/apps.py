from django.apps import AppConfig


class EasyPayGatewayConfig(AppConfig):
    """Django app configuration for the Easypay gateway."""

    name = "easypay_gateway"
    verbose_name = "Easypay Gateway"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self) -> None:
        """Import signals when the app is ready."""
        from . import signals  # noqa: F401
