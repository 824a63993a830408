from django.contrib import admin
from .models import DailySalesLog, SalesEntry, Expense, ExpensePayment, ActivityLog


class SalesEntryInline(admin.TabularInline):
    model = SalesEntry
    extra = 0
    readonly_fields = ("entry_date", "payment_method", "method_type", "is_cash", "gross_amount", "returns_amount", "net_amount")


class ExpenseInline(admin.TabularInline):
    model = Expense
    extra = 0
    fields = ("description", "category", "vendor", "amount", "payment_status")
    readonly_fields = fields


@admin.register(DailySalesLog)
class DailySalesLogAdmin(admin.ModelAdmin):
    list_display = ("log_date", "shop", "status", "gross_sales", "expected_closing", "actual_closing", "variance", "updated_at")
    list_filter = ("status", "organization", "shop")
    search_fields = ("shop__code", "shop__name", "variance_reason")
    date_hierarchy = "log_date"
    inlines = [SalesEntryInline, ExpenseInline]
    readonly_fields = ("created_at", "updated_at", "verified_at", "locked_at")


class ExpensePaymentInline(admin.TabularInline):
    model = ExpensePayment
    extra = 0


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ("expense_date", "shop", "description", "category", "amount", "payment_status")
    list_filter = ("organization", "shop", "category")
    search_fields = ("description",)
    inlines = [ExpensePaymentInline]


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("logged_at", "action", "entity_type", "entity_name", "user_name", "user_role")
    list_filter = ("action", "entity_type", "organization")
    search_fields = ("entity_name", "user_name")
    readonly_fields = ("logged_at", "metadata")
