from django.conf import settings
from django.db import models
from django.utils import timezone


# Organization owning shops, catalogs and users.
class Organization(models.Model):
    name = models.CharField(max_length=120)
    code = models.CharField(max_length=20, unique=True, help_text="Short organization code (e.g. 'TRF').")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"


# Shop (outlet) within an organization.
class Shop(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='shops')
    code = models.CharField(max_length=10, help_text="Shop code shown on registers (e.g. 'TRK').")
    name = models.CharField(max_length=120)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['display_order', 'name']
        constraints = [
            models.UniqueConstraint(fields=['organization', 'code'], name='uniq_shop_code_per_org'),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Role(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='roles')
    name = models.CharField(max_length=50)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


# Back-office profile attached to each auth user.
class Profile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile')
    organization = models.ForeignKey(Organization, null=True, blank=True, on_delete=models.SET_NULL, related_name='profiles')
    role = models.ForeignKey(Role, null=True, blank=True, on_delete=models.SET_NULL, related_name='profiles')
    full_name = models.CharField(max_length=120, blank=True)

    def __str__(self):
        return self.full_name or self.user.get_username()


class PaymentMethod(models.Model):
    METHOD_TYPE_CHOICES = [
        ('cash', 'Cash'),
        ('upi', 'UPI'),
        ('aggregator_swiggy', 'Swiggy'),
        ('aggregator_zomato', 'Zomato'),
        ('online', 'Other online'),
        ('card', 'Card'),
        ('bank', 'Bank'),
    ]
    # Sales channel a method collects into on the daily register. Blank means
    # the register falls back to matching on method type and name.
    CHANNEL_CHOICES = [
        ('cash', 'Cash'),
        ('upi', 'UPI'),
        ('swiggy', 'Swiggy'),
        ('zomato', 'Zomato'),
        ('other', 'Other Online'),
    ]

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='payment_methods')
    shop = models.ForeignKey(Shop, null=True, blank=True, on_delete=models.CASCADE, related_name='payment_methods')
    name = models.CharField(max_length=60)
    code = models.CharField(max_length=20, blank=True, default='')
    method_type = models.CharField(max_length=20, choices=METHOD_TYPE_CHOICES, default='online')
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES, blank=True, default='')
    for_sales = models.BooleanField(default=True)
    for_expenses = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    display_order = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['display_order', 'name']

    def __str__(self):
        return f"{self.name} ({self.method_type})"

    @property
    def is_cash(self) -> bool:
        return self.method_type == 'cash'


class ExpenseCategory(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='expense_categories')
    name = models.CharField(max_length=80)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['display_order', 'name']
        verbose_name_plural = 'expense categories'

    def __str__(self):
        return self.name


class Vendor(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='vendors')
    name = models.CharField(max_length=120)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name
