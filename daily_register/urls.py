from django.urls import path
from . import views

urlpatterns = [
    # API: one shop's register for a day (fetch, save, status)
    path('api/register', views.api_register, name='dr_api_register'),
    path('api/register/save', views.api_register_save, name='dr_api_register_save'),
    path('api/register/status', views.api_register_status, name='dr_api_register_status'),
    # Lookups
    path('api/register/suggestions', views.api_expense_suggestions, name='dr_api_expense_suggestions'),
    path('api/register/report', views.api_register_report, name='dr_api_register_report'),
    path('api/shops', views.api_shops, name='dr_api_shops'),
]
