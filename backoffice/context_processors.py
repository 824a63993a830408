from django.conf import settings


def app_version(request):
    """Expose application version and currency to all templates.

    Source of truth: settings.APP_VERSION (loaded from VERSION file or env var)
    and settings.REGISTER_CURRENCY.
    """
    return {
        'APP_VERSION': getattr(settings, 'APP_VERSION', 'dev'),
        'REGISTER_CURRENCY': getattr(settings, 'REGISTER_CURRENCY', 'INR'),
    }
