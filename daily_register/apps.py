from django.apps import AppConfig


class DailyRegisterConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'daily_register'
    verbose_name = 'Daily register'
