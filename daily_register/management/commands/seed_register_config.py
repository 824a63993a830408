from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from shops.models import ExpenseCategory, Organization, PaymentMethod

# (name, code, method_type, channel, for_sales, for_expenses)
DEFAULT_PAYMENT_METHODS = [
    ('Cash', 'CASH', 'cash', 'cash', True, True),
    ('UPI', 'UPI', 'upi', 'upi', True, False),
    ('Swiggy', 'SWIGGY', 'aggregator_swiggy', 'swiggy', True, False),
    ('Zomato', 'ZOMATO', 'aggregator_zomato', 'zomato', True, False),
    ('Other Online', 'ONLINE', 'online', 'other', True, False),
    ('Bank Transfer', 'BANK', 'bank', '', False, True),
]

DEFAULT_EXPENSE_CATEGORIES = ['General', 'Groceries', 'Staff', 'Utilities', 'Maintenance']


class Command(BaseCommand):
    help = "Create the default payment methods and expense categories for an organization (safe to re-run)"

    def add_arguments(self, parser):
        parser.add_argument('--org', required=True, help='Organization code')

    @transaction.atomic
    def handle(self, *args, **options):
        org = Organization.objects.filter(code=options['org']).first()
        if org is None:
            raise CommandError(f"No organization with code {options['org']}")

        created_methods = 0
        for order, (name, code, method_type, channel, for_sales, for_expenses) in enumerate(DEFAULT_PAYMENT_METHODS):
            _, created = PaymentMethod.objects.get_or_create(
                organization=org,
                shop=None,
                code=code,
                defaults=dict(
                    name=name, method_type=method_type, channel=channel,
                    for_sales=for_sales, for_expenses=for_expenses, display_order=order,
                ),
            )
            created_methods += int(created)

        created_categories = 0
        for order, name in enumerate(DEFAULT_EXPENSE_CATEGORIES):
            _, created = ExpenseCategory.objects.get_or_create(
                organization=org, name=name, defaults={'display_order': order},
            )
            created_categories += int(created)

        self.stdout.write(self.style.SUCCESS(
            f"Seeded {org.code}: {created_methods} payment methods, {created_categories} expense categories created"
        ))
