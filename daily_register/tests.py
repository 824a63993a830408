from contextlib import nullcontext
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from daily_register.exceptions import (
    AuditError, PersistError, RegisterLockedError, RegisterNotFound, RegisterValidationError,
)
from daily_register.models import ActivityLog, DailySalesLog, Expense, ExpensePayment, SalesEntry
from daily_register.services.engine import (
    RegisterContext, change_status, classify_sales_line, expense_suggestions, fetch_register,
    register_cache_key, resolve_payment_method, save_register,
)
from daily_register.services.register import (
    add_expense, empty_register, recalculate, remove_expense, set_actual_cash, set_opening_cash,
    set_sales_amount, to_amount, update_expense,
)
from daily_register.services.store import (
    DaySummary, DjangoRegisterStore, Identity, PaymentMethodInfo, RegisterStore, SalesLine, ShopRecord,
)
from shops.models import ExpenseCategory, Organization, PaymentMethod, Profile, Role, Shop

D1 = date(2026, 10, 1)
D2 = date(2026, 10, 2)


def _d(value):
    return Decimal(value)


def _mk_org(code='TRF', name='Truffles'):
    return Organization.objects.create(name=name, code=code)


def _mk_shop(org, code='TRK', name='Trunk Road', order=0):
    return Shop.objects.create(organization=org, code=code, name=name, display_order=order)


def _mk_user(org, username='asha', role='Manager', full_name='Asha Rao'):
    user = get_user_model().objects.create_user(username=username, password='pw', email=f'{username}@example.com')
    if org is not None:
        Profile.objects.create(user=user, organization=org, role=Role.objects.create(organization=org, name=role), full_name=full_name)
    return user


def _seed(org):
    call_command('seed_register_config', '--org', org.code, stdout=StringIO())


# ---------------------------------------------------------------------------
# In-memory register (no database)
# ---------------------------------------------------------------------------

class RegisterRecomputeTests(SimpleTestCase):
    def setUp(self):
        self.day = empty_register(1, D1, shop_code='TRK', opening_cash='1000', is_opening_editable=True)

    def test_empty_register_has_five_zero_channels(self):
        self.assertEqual([s.channel for s in self.day.sales], ['cash', 'upi', 'swiggy', 'zomato', 'other'])
        self.assertEqual([s.label for s in self.day.sales], ['Cash', 'UPI', 'Swiggy', 'Zomato', 'Other Online'])
        self.assertEqual(self.day.total_sales, _d('0'))
        self.assertEqual(self.day.cash.expected_cash, _d('1000'))
        self.assertEqual(self.day.status, 'draft')

    def test_expected_cash_follows_cash_sales_and_cash_expenses(self):
        day = set_sales_amount(self.day, 'cash', '5000')
        day = add_expense(day, True, 'Milk', '400')
        day = add_expense(day, False, 'Gas refill', '1200')
        self.assertEqual(day.cash.todays_cash, _d('5000'))
        self.assertEqual(day.cash.todays_expense, _d('400'))
        self.assertEqual(day.cash.expected_cash, _d('5600'))
        self.assertEqual(day.total_cash_expenses, _d('400'))
        self.assertEqual(day.total_online_expenses, _d('1200'))
        self.assertEqual(day.total_expenses, _d('1600'))

    def test_online_expense_does_not_move_expected_cash(self):
        before = self.day.cash.expected_cash
        day = add_expense(self.day, False, 'Packaging', '250')
        self.assertEqual(day.cash.expected_cash, before)

    def test_total_sales_is_sum_of_channels_after_any_edits(self):
        day = self.day
        for channel, amount in [('cash', '100'), ('upi', '250.50'), ('swiggy', '75'), ('upi', '300'), ('other', '10.25')]:
            day = set_sales_amount(day, channel, amount)
        self.assertEqual(day.total_sales, sum((s.amount for s in day.sales), _d('0')))
        self.assertEqual(day.total_sales, _d('485.25'))

    def test_actual_cash_changes_only_difference(self):
        day = set_sales_amount(self.day, 'cash', '5000')
        counted = set_actual_cash(day, '5550')
        self.assertEqual(counted.cash.expected_cash, day.cash.expected_cash)
        self.assertEqual(counted.total_sales, day.total_sales)
        self.assertEqual(counted.cash.difference, _d('-450'))
        self.assertEqual(counted.variance_type, 'short')
        self.assertEqual(set_actual_cash(day, '6000').variance_type, 'matched')
        self.assertEqual(set_actual_cash(day, '6100').variance_type, 'excess')

    def test_difference_tracks_later_sales_edits(self):
        day = set_actual_cash(self.day, '1500')
        day = set_sales_amount(day, 'cash', '500')
        self.assertEqual(day.cash.difference, _d('0'))

    def test_update_and_remove_expense(self):
        day = add_expense(self.day, True, 'Milk', '400', row_id='r1')
        day = add_expense(day, True, 'Bread', '100', row_id='r2')
        day = update_expense(day, True, 'r1', amount='450')
        self.assertEqual(day.total_cash_expenses, _d('550'))
        day = remove_expense(day, True, 'r2')
        self.assertEqual([r.row_id for r in day.cash_expenses], ['r1'])
        self.assertEqual(day.cash.expected_cash, _d('550'))
        with self.assertRaises(RegisterValidationError):
            remove_expense(day, False, 'r1')

    def test_invalid_numbers_become_zero(self):
        self.assertEqual(to_amount('abc'), _d('0'))
        self.assertEqual(to_amount(''), _d('0'))
        self.assertEqual(to_amount(None), _d('0'))
        self.assertEqual(to_amount('NaN'), _d('0'))
        self.assertEqual(to_amount('1,234.567'), _d('1234.57'))
        self.assertEqual(to_amount(-12.5), _d('-12.50'))
        day = set_sales_amount(self.day, 'upi', 'twelve')
        self.assertEqual(day.sales_amount('upi'), _d('0'))

    def test_unknown_channel_rejected(self):
        with self.assertRaises(RegisterValidationError):
            set_sales_amount(self.day, 'paytm', '10')

    def test_opening_cash_only_editable_on_first_day(self):
        day = set_opening_cash(self.day, '2000')
        self.assertEqual(day.cash.expected_cash, _d('2000'))
        carried = empty_register(1, D2, opening_cash='5550', is_opening_editable=False)
        with self.assertRaises(RegisterValidationError):
            set_opening_cash(carried, '1')

    def test_verified_day_rejects_edits(self):
        day = replace(self.day, status='verified')
        with self.assertRaises(RegisterLockedError):
            set_sales_amount(day, 'cash', '1')
        with self.assertRaises(RegisterLockedError):
            add_expense(day, True, 'Milk', '1')
        with self.assertRaises(RegisterLockedError):
            set_actual_cash(day, '1')

    def test_recalculate_repairs_stale_totals(self):
        stale = replace(set_sales_amount(self.day, 'cash', '200'), total_sales=_d('999'))
        self.assertEqual(recalculate(stale).total_sales, _d('200'))

    def test_short_day_reconciliation(self):
        day = empty_register(1, D1, opening_cash='5000')
        day = set_sales_amount(day, 'cash', '12000')
        day = add_expense(day, True, 'Vegetables', '2000')
        day = add_expense(day, True, 'Gas', '500')
        day = set_actual_cash(day, '14300')
        self.assertEqual(day.cash.expected_cash, _d('14500'))
        self.assertEqual(day.cash.difference, _d('-200'))
        self.assertEqual(day.variance_type, 'short')

    def test_add_then_remove_restores_totals(self):
        day = set_actual_cash(set_sales_amount(self.day, 'cash', '800'), '1700')
        for is_cash in (True, False):
            added = add_expense(day, is_cash, 'Onions', '350', row_id='tmp')
            self.assertNotEqual(added.total_expenses, day.total_expenses)
            restored = remove_expense(added, is_cash, 'tmp')
            self.assertEqual(restored.total_cash_expenses, day.total_cash_expenses)
            self.assertEqual(restored.total_online_expenses, day.total_online_expenses)
            self.assertEqual(restored.total_expenses, day.total_expenses)
            self.assertEqual(restored.cash.todays_expense, day.cash.todays_expense)
            self.assertEqual(restored.cash.expected_cash, day.cash.expected_cash)
            self.assertEqual(restored.cash.difference, day.cash.difference)

    def test_amounts_beyond_column_range_rejected(self):
        self.assertEqual(to_amount('9999999999.99'), _d('9999999999.99'))
        for raw in ('1e30', '12345678901', -12345678901):
            with self.assertRaises(RegisterValidationError):
                to_amount(raw)
        with self.assertRaises(RegisterValidationError):
            set_sales_amount(self.day, 'cash', '1e30')

    def test_expense_description_length_and_type(self):
        day = add_expense(self.day, True, 'x' * 255, '10', row_id='r1')
        self.assertEqual(len(day.cash_expenses[0].description), 255)
        with self.assertRaises(RegisterValidationError):
            add_expense(self.day, True, 'x' * 256, '10')
        with self.assertRaises(RegisterValidationError):
            update_expense(day, True, 'r1', description='y' * 300)
        with self.assertRaises(RegisterValidationError):
            add_expense(self.day, True, 123, '10')


class ChannelClassificationTests(SimpleTestCase):
    def _line(self, **kw):
        base = dict(payment_method_id=None, method_type='online', is_cash=False, gross_amount=_d('1'), net_amount=_d('1'))
        base.update(kw)
        return SalesLine(**base)

    def test_cash_flag_wins(self):
        self.assertEqual(classify_sales_line(self._line(is_cash=True, channel_tag='upi')), 'cash')
        self.assertEqual(classify_sales_line(self._line(method_type='cash')), 'cash')

    def test_channel_tag_beats_name(self):
        self.assertEqual(classify_sales_line(self._line(channel_tag='swiggy', payment_method_name='Zomato wallet')), 'swiggy')

    def test_method_type_marker(self):
        self.assertEqual(classify_sales_line(self._line(method_type='aggregator_zomato')), 'zomato')
        self.assertEqual(classify_sales_line(self._line(method_type='upi')), 'upi')

    def test_name_fallback_and_other(self):
        self.assertEqual(classify_sales_line(self._line(payment_method_name='PhonePe UPI')), 'upi')
        self.assertEqual(classify_sales_line(self._line(payment_method_name='Swiggy Dineout')), 'swiggy')
        self.assertEqual(classify_sales_line(self._line(method_type='card', payment_method_name='Card')), 'other')

    def test_resolve_payment_method(self):
        methods = [
            PaymentMethodInfo(id=1, name='Cash', method_type='cash'),
            PaymentMethodInfo(id=2, name='GPay', method_type='upi', channel='upi'),
        ]
        self.assertEqual(resolve_payment_method('upi', 'UPI', methods), (2, 'upi', False))
        self.assertEqual(resolve_payment_method('cash', 'Cash', methods), (1, 'cash', True))
        self.assertEqual(resolve_payment_method('zomato', 'Zomato', methods), (None, 'aggregator_zomato', False))


# ---------------------------------------------------------------------------
# Engine against an in-memory store
# ---------------------------------------------------------------------------

class _DictCache(dict):
    def delete(self, key):
        self.pop(key, None)


class InMemoryRegisterStore(RegisterStore):
    def __init__(self):
        self.identity = Identity(user_id=1, org_id=1, name='Asha Rao', role='Manager')
        self.shops = {1: ShopRecord(id=1, org_id=1, code='TRK', name='Trunk Road')}
        self.days = {}
        self.sales = {}
        self.expenses = {}
        self.methods = [
            PaymentMethodInfo(id=11, name='Cash', method_type='cash', channel='cash'),
            PaymentMethodInfo(id=12, name='UPI', method_type='upi', channel='upi'),
        ]
        self.default_category = 7
        self.expense_methods = {'cash': 21, 'bank': 22}
        self.audit = []
        self.fail_audit = False
        self.fail_sales_write = False

    def resolve_identity(self, user):
        return self.identity

    def get_shop(self, shop_id):
        return self.shops.get(shop_id)

    def list_shops(self, org_id):
        return [s for s in self.shops.values() if s.org_id == org_id]

    def get_day(self, shop_id, log_date):
        return self.days.get((shop_id, log_date))

    def get_opening_cash(self, shop_id, log_date):
        earlier = sorted(d for (s, d) in self.days if s == shop_id and d < log_date)
        return self.days[(shop_id, earlier[-1])].actual_closing if earlier else None

    def get_sales_lines(self, day_id):
        return list(self.sales.get(day_id, []))

    def get_expense_lines(self, day_id):
        return list(self.expenses.get(day_id, []))

    def get_active_payment_methods(self, org_id):
        return list(self.methods)

    def get_default_expense_category(self, org_id):
        return self.default_category

    def get_expense_payment_method(self, org_id, method_type):
        return self.expense_methods.get(method_type)

    def recent_expense_descriptions(self, org_id, limit=100):
        lines = [ln for day_lines in self.expenses.values() for ln in day_lines]
        return [ln.description for ln in reversed(lines)][:limit]

    def list_days(self, org_id, shop_id=None, start_date=None, end_date=None):
        return [d for d in self.days.values() if d.org_id == org_id]

    def atomic(self):
        return nullcontext()

    def upsert_day_summary(self, key, fields):
        existing = self.days.get((key.shop_id, key.log_date))
        day_id = existing.id if existing else len(self.days) + 1
        self.days[(key.shop_id, key.log_date)] = DaySummary(
            id=day_id, shop_id=key.shop_id, org_id=key.org_id, log_date=key.log_date,
            status=fields['status'], opening_cash=fields['opening_cash'],
            gross_sales=fields['gross_sales'], cash_sales=fields['cash_sales'],
            total_cash_expenses=fields['total_cash_expenses'], total_online_expenses=fields['total_online_expenses'],
            expected_closing=fields['expected_closing'], actual_closing=fields['actual_closing'],
            variance=fields['variance'], variance_reason=fields['variance_reason'], notes=fields['notes'],
        )
        return day_id

    def replace_sales_lines(self, day_id, lines):
        if self.fail_sales_write:
            raise PersistError('disk full')
        self.sales[day_id] = list(lines)

    def replace_expense_lines(self, day_id, lines):
        self.expenses[day_id] = [replace(ln, id=100 * day_id + n) for n, ln in enumerate(lines, start=1)]

    def update_day_status(self, day_id, fields):
        for key, summary in self.days.items():
            if summary.id == day_id:
                self.days[key] = replace(summary, status=fields['status'])

    def write_audit_record(self, event):
        if self.fail_audit:
            raise AuditError('activity log unavailable')
        self.audit.append(event)


class RegisterEngineTests(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryRegisterStore()
        self.cache = _DictCache()
        self.ctx = RegisterContext(store=self.store, user=object(), cache=self.cache)

    def _filled(self, log_date=D1, actual='5550'):
        day = fetch_register(self.ctx, 1, log_date)
        day = set_sales_amount(day, 'cash', '5000')
        day = set_sales_amount(day, 'upi', '3000')
        day = add_expense(day, True, 'Milk', '400')
        day = add_expense(day, False, 'Gas refill', '1200')
        return set_actual_cash(day, actual)

    def test_unknown_shop(self):
        with self.assertRaises(RegisterNotFound):
            fetch_register(self.ctx, 99, D1)

    def test_first_day_bootstraps_editable_zero_opening(self):
        day = fetch_register(self.ctx, 1, D1)
        self.assertIsNone(day.id)
        self.assertEqual(day.cash.opening_cash, _d('0'))
        self.assertTrue(day.cash.is_opening_editable)

    def test_save_writes_summary_and_nonzero_lines(self):
        result = save_register(self.ctx, self._filled())
        self.assertTrue(result.success)
        self.assertTrue(result.created)
        summary = self.store.days[(1, D1)]
        self.assertEqual(summary.gross_sales, _d('8000'))
        self.assertEqual(summary.expected_closing, _d('4600'))
        self.assertEqual(summary.variance, _d('950'))
        self.assertEqual([ln.method_type for ln in self.store.sales[result.log_id]], ['cash', 'upi'])
        payments = [ln.payments[0] for ln in self.store.expenses[result.log_id]]
        self.assertEqual([(p.is_cash, p.payment_method_id) for p in payments], [(True, 21), (False, 22)])
        self.assertEqual(self.store.audit[0].action, 'record.create')
        self.assertEqual(self.store.audit[0].metadata['variance_type'], 'excess')

    def test_next_day_opens_with_previous_closing(self):
        save_register(self.ctx, self._filled())
        day = fetch_register(self.ctx, 1, D2)
        self.assertEqual(day.cash.opening_cash, _d('5550'))
        self.assertFalse(day.cash.is_opening_editable)

    def test_resave_is_stable(self):
        first = save_register(self.ctx, self._filled())
        fetched = fetch_register(self.ctx, 1, D1)
        second = save_register(self.ctx, fetched)
        self.assertFalse(second.created)
        self.assertEqual(first.log_id, second.log_id)
        self.assertEqual(len(self.store.sales[first.log_id]), 2)
        self.assertEqual(len(self.store.expenses[first.log_id]), 2)
        self.assertEqual(fetch_register(self.ctx, 1, D1).cash, fetched.cash)
        self.assertIn('previous', self.store.audit[-1].metadata)

    def test_audit_failure_does_not_fail_save(self):
        self.store.fail_audit = True
        with self.assertLogs('daily_register.services.engine', level='WARNING'):
            result = save_register(self.ctx, self._filled())
        self.assertTrue(result.success)
        self.assertIn((1, D1), self.store.days)

    def test_persist_error_propagates_and_invalidates_cache(self):
        key = register_cache_key(1, D1)
        self.cache[key] = {'stale': True}
        self.store.fail_sales_write = True
        with self.assertRaises(PersistError):
            save_register(self.ctx, self._filled())
        self.assertNotIn(key, self.cache)

    def test_missing_category_skips_expense_with_warning(self):
        self.store.default_category = None
        with self.assertLogs('daily_register.services.engine', level='WARNING'):
            result = save_register(self.ctx, self._filled())
        self.assertEqual(len(result.warnings), 2)
        self.assertEqual(self.store.expenses[result.log_id], [])
        self.assertEqual(self.store.days[(1, D1)].gross_sales, _d('8000'))

    def test_blank_and_zero_expenses_are_not_saved(self):
        day = add_expense(self._filled(), True, '', '50')
        day = add_expense(day, True, 'Ice', '0')
        result = save_register(self.ctx, day)
        self.assertEqual([ln.description for ln in self.store.expenses[result.log_id]], ['Milk', 'Gas refill'])

    def test_negative_totals_block_save(self):
        day = set_sales_amount(fetch_register(self.ctx, 1, D1), 'upi', '-100')
        with self.assertRaises(RegisterValidationError):
            save_register(self.ctx, day)
        self.assertEqual(self.store.days, {})

    def test_totals_beyond_column_range_block_save(self):
        day = fetch_register(self.ctx, 1, D1)
        for channel in ('cash', 'upi', 'swiggy', 'zomato', 'other'):
            day = set_sales_amount(day, channel, '9999999999')
        with self.assertRaises(RegisterValidationError):
            save_register(self.ctx, day)
        self.assertEqual(self.store.days, {})

    def test_negative_row_with_positive_total_saves(self):
        day = set_sales_amount(fetch_register(self.ctx, 1, D1), 'cash', '500')
        day = set_sales_amount(day, 'upi', '-100')
        result = save_register(self.ctx, day)
        self.assertEqual(self.store.days[(1, D1)].gross_sales, _d('400'))
        # only positive channels become sales lines
        self.assertEqual(len(self.store.sales[result.log_id]), 1)

    def test_status_moves_forward_only(self):
        save_register(self.ctx, self._filled())
        self.assertEqual(change_status(self.ctx, 1, D1, 'submitted').status, 'submitted')
        with self.assertRaises(RegisterValidationError):
            change_status(self.ctx, 1, D1, 'draft')
        change_status(self.ctx, 1, D1, 'verified')
        with self.assertRaises(RegisterLockedError):
            save_register(self.ctx, self._filled())
        self.assertEqual(self.store.audit[-1].action, 'record.status_change')

    def test_status_change_needs_saved_day(self):
        with self.assertRaises(RegisterNotFound):
            change_status(self.ctx, 1, D2, 'submitted')

    def test_expense_suggestions_are_distinct(self):
        save_register(self.ctx, self._filled())
        save_register(self.ctx, self._filled(log_date=D2))
        self.assertEqual(expense_suggestions(self.ctx), ['Gas refill', 'Milk'])


# ---------------------------------------------------------------------------
# Django store
# ---------------------------------------------------------------------------

class RegisterPersistenceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.org = _mk_org()
        _seed(self.org)
        self.shop = _mk_shop(self.org)
        self.user = _mk_user(self.org)
        self.ctx = RegisterContext(store=DjangoRegisterStore(), user=self.user, cache=cache)

    def _filled(self, log_date=D1):
        day = fetch_register(self.ctx, self.shop.pk, log_date)
        if day.cash.is_opening_editable:
            day = set_opening_cash(day, '1000')
        day = set_sales_amount(day, 'cash', '5000')
        day = set_sales_amount(day, 'upi', '3000')
        day = add_expense(day, True, 'Milk', '400')
        day = add_expense(day, False, 'Gas refill', '1200')
        return set_actual_cash(day, '5550')

    def test_save_then_fetch_round_trip(self):
        saved = self._filled()
        result = save_register(self.ctx, saved)
        day = fetch_register(self.ctx, self.shop.pk, D1)
        self.assertEqual(day.id, result.log_id)
        self.assertEqual([s.amount for s in day.sales], [s.amount for s in saved.sales])
        self.assertEqual([(r.description, r.amount) for r in day.cash_expenses], [('Milk', _d('400'))])
        self.assertEqual([(r.description, r.amount) for r in day.online_expenses], [('Gas refill', _d('1200'))])
        self.assertEqual(day.cash.opening_cash, _d('1000'))
        self.assertEqual(day.cash.expected_cash, _d('5600'))
        self.assertEqual(day.cash.difference, _d('-50'))
        self.assertEqual(day.total_sales, _d('8000'))
        self.assertIsNotNone(day.last_saved_at)

    def test_zero_channels_not_persisted(self):
        result = save_register(self.ctx, self._filled())
        entries = SalesEntry.objects.filter(daily_log_id=result.log_id)
        self.assertEqual(sorted(entries.values_list('method_type', flat=True)), ['cash', 'upi'])
        cash_entry = entries.get(method_type='cash')
        self.assertTrue(cash_entry.is_cash)
        self.assertEqual(cash_entry.payment_method.code, 'CASH')

    def test_expense_payments_follow_cash_flag(self):
        save_register(self.ctx, self._filled())
        cash_payment = ExpensePayment.objects.get(expense__description='Milk')
        bank_payment = ExpensePayment.objects.get(expense__description='Gas refill')
        self.assertTrue(cash_payment.is_cash)
        self.assertEqual(cash_payment.payment_method.code, 'CASH')
        self.assertFalse(bank_payment.is_cash)
        self.assertEqual(bank_payment.payment_method.code, 'BANK')
        self.assertEqual(Expense.objects.get(description='Milk').category.name, 'General')

    def test_resave_replaces_lines(self):
        save_register(self.ctx, self._filled())
        result = save_register(self.ctx, fetch_register(self.ctx, self.shop.pk, D1))
        self.assertFalse(result.created)
        self.assertEqual(DailySalesLog.objects.count(), 1)
        self.assertEqual(SalesEntry.objects.count(), 2)
        self.assertEqual(Expense.objects.count(), 2)
        self.assertEqual(ExpensePayment.objects.count(), 2)
        actions = list(ActivityLog.objects.order_by('id').values_list('action', flat=True))
        self.assertEqual(actions, ['record.create', 'record.update'])

    def test_channel_zeroed_disappears_on_resave(self):
        save_register(self.ctx, self._filled())
        self.assertTrue(SalesEntry.objects.filter(method_type='upi').exists())
        fetched = fetch_register(self.ctx, self.shop.pk, D1)
        save_register(self.ctx, set_sales_amount(fetched, 'upi', '0'))
        self.assertFalse(SalesEntry.objects.filter(method_type='upi').exists())
        self.assertEqual(list(SalesEntry.objects.values_list('method_type', flat=True)), ['cash'])
        day = fetch_register(self.ctx, self.shop.pk, D1)
        self.assertEqual(day.sales_amount('upi'), _d('0'))
        self.assertEqual(day.total_sales, _d('5000'))

    def test_opening_cash_carries_to_next_day(self):
        save_register(self.ctx, self._filled())
        day = fetch_register(self.ctx, self.shop.pk, D2)
        self.assertEqual(day.cash.opening_cash, _d('5550'))
        self.assertFalse(day.cash.is_opening_editable)
        self.assertIsNone(day.id)

    def test_missing_category_keeps_sales(self):
        ExpenseCategory.objects.filter(organization=self.org).update(is_active=False)
        result = save_register(self.ctx, self._filled())
        self.assertTrue(result.warnings)
        self.assertEqual(Expense.objects.count(), 0)
        self.assertEqual(DailySalesLog.objects.get().gross_sales, _d('8000'))

    def test_missing_expense_payment_method_warns(self):
        PaymentMethod.objects.filter(organization=self.org, method_type='bank').delete()
        result = save_register(self.ctx, self._filled())
        self.assertEqual(len(result.warnings), 1)
        self.assertIsNone(ExpensePayment.objects.get(expense__description='Gas refill').payment_method)

    def test_audit_failure_does_not_fail_save(self):
        with mock.patch.object(DjangoRegisterStore, 'write_audit_record', side_effect=AuditError('down')):
            result = save_register(self.ctx, self._filled())
        self.assertTrue(result.success)
        self.assertEqual(ActivityLog.objects.count(), 0)
        self.assertEqual(DailySalesLog.objects.count(), 1)

    def test_persist_error_rolls_back_summary(self):
        with mock.patch.object(DjangoRegisterStore, 'replace_sales_lines', side_effect=PersistError('down')):
            with self.assertRaises(PersistError):
                save_register(self.ctx, self._filled())
        self.assertEqual(DailySalesLog.objects.count(), 0)

    def test_decimal_overflow_in_write_becomes_persist_error(self):
        with mock.patch.object(SalesEntry.objects, 'bulk_create', side_effect=InvalidOperation):
            with self.assertRaises(PersistError):
                save_register(self.ctx, self._filled())
        self.assertEqual(DailySalesLog.objects.count(), 0)

    def test_verify_and_lock(self):
        save_register(self.ctx, self._filled())
        change_status(self.ctx, self.shop.pk, D1, 'verified')
        log = DailySalesLog.objects.get()
        self.assertEqual(log.verified_by, self.user)
        self.assertIsNotNone(log.verified_at)
        change_status(self.ctx, self.shop.pk, D1, 'locked')
        self.assertIsNotNone(DailySalesLog.objects.get().locked_at)
        with self.assertRaises(RegisterLockedError):
            change_status(self.ctx, self.shop.pk, D1, 'locked')

    def test_name_only_payment_method_classified_by_name(self):
        result = save_register(self.ctx, self._filled())
        phonepe = PaymentMethod.objects.create(organization=self.org, name='PhonePe UPI', method_type='online')
        SalesEntry.objects.filter(daily_log_id=result.log_id, method_type='upi').update(
            payment_method=phonepe, method_type='online')
        day = fetch_register(self.ctx, self.shop.pk, D1)
        self.assertEqual(day.sales_amount('upi'), _d('3000'))
        self.assertEqual(day.sales_amount('other'), _d('0'))


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

class RegisterApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.org = _mk_org()
        _seed(self.org)
        self.shop = _mk_shop(self.org)
        self.user = _mk_user(self.org)
        self.client.force_login(self.user)

    def _payload(self, **overrides):
        payload = {
            'shop': self.shop.pk,
            'date': D1.isoformat(),
            'sales': [{'channel': 'cash', 'amount': '5000'}, {'channel': 'upi', 'amount': 3000}],
            'cash_expenses': [{'description': 'Milk', 'amount': '400'}],
            'online_expenses': [{'description': 'Gas refill', 'amount': '1200'}],
            'cash': {'opening_cash': '1000', 'actual_cash': '5550'},
            'notes': 'Busy Friday',
        }
        payload.update(overrides)
        return payload

    def _save(self, **overrides):
        return self.client.post(reverse('dr_api_register_save'), data=self._payload(**overrides), content_type='application/json')

    def _get(self, log_date=D1):
        return self.client.get(reverse('dr_api_register'), {'shop': self.shop.pk, 'date': log_date.isoformat()})

    def test_fetch_empty_day(self):
        resp = self._get()
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertIsNone(data['id'])
        self.assertEqual(len(data['sales']), 5)
        self.assertEqual(data['cash']['opening_cash'], '0.00')
        self.assertTrue(data['cash']['is_opening_editable'])

    def test_save_then_fetch_sees_new_values(self):
        self._get()  # primes the cache
        resp = self._save()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['status'], 'ok')
        self.assertTrue(resp.json()['created'])
        data = self._get().json()
        self.assertEqual(data['total_sales'], '8000.00')
        self.assertEqual(data['cash']['expected_cash'], '5600.00')
        self.assertEqual(data['cash']['difference'], '-50.00')
        self.assertEqual(data['variance_type'], 'short')
        self.assertEqual(data['notes'], 'Busy Friday')
        self.assertEqual([e['description'] for e in data['cash_expenses']], ['Milk'])

    def test_opening_cash_ignored_after_first_day(self):
        self._save()
        self._save(date=D2.isoformat(), cash={'opening_cash': '99999', 'actual_cash': '0'})
        data = self._get(D2).json()
        self.assertEqual(data['cash']['opening_cash'], '5550.00')

    def test_bad_requests(self):
        self.assertEqual(self.client.get(reverse('dr_api_register')).status_code, 400)
        resp = self.client.get(reverse('dr_api_register'), {'shop': self.shop.pk, 'date': '01/10/2026'})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post(reverse('dr_api_register_save'), data='not json', content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {'error': 'Invalid JSON'})
        resp = self._save(sales=[{'channel': 'paytm', 'amount': '1'}])
        self.assertEqual(resp.status_code, 400)

    def test_negative_total_rejected(self):
        resp = self._save(sales=[{'channel': 'upi', 'amount': '-100'}], cash_expenses=[], online_expenses=[])
        self.assertEqual(resp.status_code, 400)
        self.assertIn('error', resp.json())
        self.assertFalse(DailySalesLog.objects.exists())

    def test_oversized_amounts_rejected(self):
        for raw in ('1e30', '12345678901'):
            resp = self._save(sales=[{'channel': 'cash', 'amount': raw}])
            self.assertEqual(resp.status_code, 400)
            self.assertIn('out of range', resp.json()['error'])
        resp = self._save(cash={'actual_cash': '1e30'})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(DailySalesLog.objects.exists())

    def test_long_expense_description_rejected(self):
        resp = self._save(cash_expenses=[{'description': 'x' * 300, 'amount': '10'}])
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(DailySalesLog.objects.exists())
        self.assertEqual(Expense.objects.count(), 0)

    def test_malformed_fields_rejected(self):
        bad_payloads = (
            {'cash_expenses': [{'description': 123, 'amount': '10'}]},
            {'cash': 'actual_cash'},
            {'sales': 'cash'},
            {'notes': 5},
            {'variance_reason': ['late']},
        )
        for overrides in bad_payloads:
            resp = self._save(**overrides)
            self.assertEqual(resp.status_code, 400, overrides)
        self.assertFalse(DailySalesLog.objects.exists())

    def test_unknown_shop_is_404(self):
        resp = self.client.get(reverse('dr_api_register'), {'shop': 99999})
        self.assertEqual(resp.status_code, 404)

    def test_other_organization_shop_is_401(self):
        other = _mk_shop(_mk_org(code='OTH', name='Other'), code='OTH')
        resp = self.client.get(reverse('dr_api_register'), {'shop': other.pk})
        self.assertEqual(resp.status_code, 401)

    def test_user_without_profile_is_401(self):
        self.client.force_login(_mk_user(None, username='nobody'))
        self.assertEqual(self._get().status_code, 401)

    def test_anonymous_redirected_to_login(self):
        self.client.logout()
        self.assertEqual(self._get().status_code, 302)

    def test_get_only_and_post_only(self):
        self.assertEqual(self.client.post(reverse('dr_api_register')).status_code, 405)
        self.assertEqual(self.client.get(reverse('dr_api_register_save')).status_code, 405)

    def test_status_flow_and_locked_save(self):
        self._save()
        status_url = reverse('dr_api_register_status')
        body = {'shop': self.shop.pk, 'date': D1.isoformat(), 'status': 'verified'}
        resp = self.client.post(status_url, data=body, content_type='application/json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['status'], 'verified')
        self.assertEqual(self._save().status_code, 409)
        body['status'] = 'submitted'
        self.assertEqual(self.client.post(status_url, data=body, content_type='application/json').status_code, 400)
        body['date'] = D2.isoformat()
        self.assertEqual(self.client.post(status_url, data=body, content_type='application/json').status_code, 404)
        self.assertFalse(self._get().json()['is_editable'])

    def test_lookups(self):
        _mk_shop(self.org, code='MGR', name='MG Road', order=1)
        self._save()
        shops = self.client.get(reverse('dr_api_shops')).json()['shops']
        self.assertEqual([s['code'] for s in shops], ['TRK', 'MGR'])
        suggestions = self.client.get(reverse('dr_api_expense_suggestions')).json()['suggestions']
        self.assertEqual(sorted(suggestions), ['Gas refill', 'Milk'])

    def test_report(self):
        self._save()
        self._save(date=D2.isoformat(), cash={'actual_cash': '5550'})
        resp = self.client.get(reverse('dr_api_register_report'), {'shop': self.shop.pk, 'start_date': D2.isoformat()})
        self.assertEqual(resp.status_code, 200)
        rows = resp.json()['rows']
        self.assertEqual([r['date'] for r in rows], [D2.isoformat()])
        self.assertEqual(rows[0]['variance_type'], 'short')
        resp = self.client.get(reverse('dr_api_register_report'), {'start_date': D2.isoformat(), 'end_date': D1.isoformat()})
        self.assertEqual(resp.status_code, 400)


# ---------------------------------------------------------------------------
# Management commands
# ---------------------------------------------------------------------------

class RegisterCommandTests(TestCase):
    def setUp(self):
        self.org = _mk_org()
        self.shop = _mk_shop(self.org)

    def test_seed_is_idempotent(self):
        _seed(self.org)
        _seed(self.org)
        self.assertEqual(PaymentMethod.objects.filter(organization=self.org).count(), 6)
        self.assertEqual(ExpenseCategory.objects.filter(organization=self.org).count(), 5)
        self.assertEqual(
            set(PaymentMethod.objects.filter(for_sales=True).values_list('channel', flat=True)),
            {'cash', 'upi', 'swiggy', 'zomato', 'other'},
        )

    def test_inspect_register(self):
        _seed(self.org)
        ctx = RegisterContext(store=DjangoRegisterStore(), user=_mk_user(self.org))
        day = set_sales_amount(fetch_register(ctx, self.shop.pk, D1), 'cash', '750')
        save_register(ctx, day)
        out = StringIO()
        call_command('inspect_register', '--shop', 'TRK', '--date', D1.isoformat(), stdout=out)
        text = out.getvalue()
        self.assertIn('TRK', text)
        self.assertIn('750.00', text)
        self.assertIn('expected=750.00', text)

    def test_inspect_unknown_shop(self):
        with self.assertRaises(CommandError):
            call_command('inspect_register', '--shop', 'NOPE', stdout=StringIO())
