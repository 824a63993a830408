from django.contrib import admin
from .models import Organization, Shop, Role, Profile, PaymentMethod, ExpenseCategory, Vendor


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active", "created_at")
    search_fields = ("name", "code")


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "organization", "display_order", "is_active")
    list_filter = ("organization", "is_active")
    search_fields = ("code", "name")
    ordering = ("organization", "display_order")


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "full_name", "organization", "role")
    list_filter = ("organization",)
    search_fields = ("user__username", "full_name")


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ("name", "organization", "method_type", "channel", "for_sales", "for_expenses", "is_active")
    list_filter = ("organization", "method_type", "channel", "is_active")
    search_fields = ("name", "code")


# Register remaining catalog models with list_display for all fields
for model in (Role, ExpenseCategory, Vendor):
    class AllFieldsAdmin(admin.ModelAdmin):
        list_display = [field.name for field in model._meta.fields]
    admin.site.register(model, AllFieldsAdmin)
