from django.conf import settings
from django.db import models
from django.utils import timezone

from shops.models import Organization, Shop, PaymentMethod, ExpenseCategory, Vendor


STATUS_CHOICES = [
    ('draft', 'Draft'),
    ('submitted', 'Submitted'),
    ('verified', 'Verified'),
    ('locked', 'Locked'),
]


# Daily sales log: one summary row per shop and business day.
class DailySalesLog(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='daily_logs')
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='daily_logs')
    log_date = models.DateField()
    opening_cash = models.DecimalField(max_digits=12, decimal_places=2, default=0, help_text="Cash on hand at the start of the day")
    gross_sales = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    net_sales = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    cash_sales = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_cash_expenses = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_online_expenses = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    expected_closing = models.DecimalField(max_digits=12, decimal_places=2, default=0, help_text="Opening + cash sales - cash expenses")
    actual_closing = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True, help_text="Cash counted at the end of the day")
    variance = models.DecimalField(max_digits=12, decimal_places=2, default=0, help_text="Actual closing minus expected closing")
    variance_reason = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='draft')
    logged_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='daily_logs')
    verified_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='verified_daily_logs')
    verified_at = models.DateTimeField(null=True, blank=True)
    locked_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-log_date', 'shop']
        constraints = [
            models.UniqueConstraint(fields=['shop', 'log_date'], name='uniq_daily_log_per_shop_date'),
        ]

    def __str__(self):
        return f"{self.shop.code} - {self.log_date:%Y-%m-%d} ({self.status})"


# Sales entry: one collected amount per payment channel for a daily log.
class SalesEntry(models.Model):
    daily_log = models.ForeignKey(DailySalesLog, on_delete=models.CASCADE, related_name='sales_entries')
    entry_date = models.DateField()
    payment_method = models.ForeignKey(PaymentMethod, null=True, blank=True, on_delete=models.PROTECT, related_name='sales_entries')
    method_type = models.CharField(max_length=20, default='online')
    is_cash = models.BooleanField(default=False)
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    returns_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name_plural = 'sales entries'

    def __str__(self):
        return f"{self.method_type} {self.net_amount} ({self.entry_date:%Y-%m-%d})"


class Expense(models.Model):
    PAYMENT_STATUS_CHOICES = [
        ('paid', 'Paid'),
        ('partial', 'Partial'),
        ('pending', 'Pending'),
    ]

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='expenses')
    shop = models.ForeignKey(Shop, null=True, blank=True, on_delete=models.CASCADE, related_name='expenses')
    daily_log = models.ForeignKey(DailySalesLog, null=True, blank=True, on_delete=models.CASCADE, related_name='expenses')
    expense_date = models.DateField()
    category = models.ForeignKey(ExpenseCategory, on_delete=models.PROTECT, related_name='expenses')
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name='expenses')
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='paid')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='expenses')
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.description} ({self.amount})"


class ExpensePayment(models.Model):
    expense = models.ForeignKey(Expense, on_delete=models.CASCADE, related_name='payments')
    payment_method = models.ForeignKey(PaymentMethod, null=True, blank=True, on_delete=models.PROTECT, related_name='expense_payments')
    method_type = models.CharField(max_length=20, default='cash')
    is_cash = models.BooleanField(default=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField(null=True, blank=True)

    def __str__(self):
        return f"{self.method_type} {self.amount} for expense {self.expense_id}"


# Activity log: one row per business action, written best-effort.
class ActivityLog(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='activity_logs')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='activity_logs')
    user_name = models.CharField(max_length=150, blank=True, default='')
    user_role = models.CharField(max_length=50, blank=True, default='')
    action = models.CharField(max_length=40)
    entity_type = models.CharField(max_length=40)
    entity_id = models.CharField(max_length=40, blank=True, default='')
    entity_name = models.CharField(max_length=120, blank=True, default='')
    shop = models.ForeignKey(Shop, null=True, blank=True, on_delete=models.SET_NULL, related_name='activity_logs')
    metadata = models.JSONField(default=dict, blank=True)
    logged_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-logged_at']

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id} by {self.user_name or '-'}"
