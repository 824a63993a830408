from datetime import date

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from daily_register.exceptions import RegisterError
from daily_register.services.engine import RegisterContext, fetch_register
from daily_register.services.store import DjangoRegisterStore
from shops.models import Shop


class Command(BaseCommand):
    help = "Inspect a shop's daily register: prints sales by channel, expenses and the cash reconciliation for a date"

    def add_arguments(self, parser):
        parser.add_argument('--shop', required=True, help='Shop code')
        parser.add_argument('--org', help='Organization code, needed when the shop code exists in more than one organization', default=None)
        parser.add_argument('--date', help='YYYY-MM-DD of the business day to inspect (defaults to today)', default=None)

    def handle(self, *args, **options):
        target_date = date.fromisoformat(options['date']) if options['date'] else timezone.localdate()
        shops = Shop.objects.filter(code=options['shop'])
        if options['org']:
            shops = shops.filter(organization__code=options['org'])
        matches = list(shops[:2])
        if not matches:
            raise CommandError(f"No shop with code {options['shop']}")
        if len(matches) > 1:
            raise CommandError(f"Shop code {options['shop']} is ambiguous; pass --org")

        try:
            day = fetch_register(RegisterContext(store=DjangoRegisterStore()), matches[0].pk, target_date)
        except RegisterError as exc:
            raise CommandError(str(exc)) from exc

        if day.id is None:
            self.stdout.write(self.style.WARNING(f"No register saved for {day.shop_code} on {target_date}"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Register #{day.id} {day.shop_code} {target_date} [{day.status}]"))
        for row in day.sales:
            self.stdout.write(f"  {row.label:<14} {row.amount:>12}")
        self.stdout.write(f"  {'Total sales':<14} {day.total_sales:>12}")
        for label, rows in (('Cash expenses', day.cash_expenses), ('Online expenses', day.online_expenses)):
            if rows:
                self.stdout.write(f"{label}:")
                for r in rows:
                    self.stdout.write(f"  {r.description[:30]:<30} {r.amount:>12}")
        cash = day.cash
        self.stdout.write(
            f"Cash: opening={cash.opening_cash} sales={cash.todays_cash} expenses={cash.todays_expense} "
            f"expected={cash.expected_cash} actual={cash.actual_cash} difference={cash.difference} ({day.variance_type})"
        )
