"""Read/write contract between the register engine and the database.

`RegisterStore` lists the operations the engine needs; `DjangoRegisterStore`
implements them on the ORM. Read failures surface as FetchError, write
failures as PersistError and activity-log failures as AuditError.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from daily_register.exceptions import AuditError, AuthError, FetchError, PersistError
from daily_register.models import ActivityLog, DailySalesLog, Expense, ExpensePayment, SalesEntry
from shops.models import ExpenseCategory, PaymentMethod, Profile, Shop

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class Identity:
    user_id: int
    org_id: int
    name: str
    role: str
    email: str = ''


@dataclass(frozen=True)
class ShopRecord:
    id: int
    org_id: int
    code: str
    name: str


@dataclass(frozen=True)
class DayKey:
    org_id: int
    shop_id: int
    log_date: date


@dataclass(frozen=True)
class DaySummary:
    id: int
    shop_id: int
    org_id: int
    log_date: date
    status: str = 'draft'
    opening_cash: Optional[Decimal] = None
    gross_sales: Decimal = ZERO
    cash_sales: Decimal = ZERO
    total_cash_expenses: Decimal = ZERO
    total_online_expenses: Decimal = ZERO
    expected_closing: Decimal = ZERO
    actual_closing: Optional[Decimal] = None
    variance: Decimal = ZERO
    variance_reason: str = ''
    notes: str = ''
    shop_code: str = ''
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentMethodInfo:
    id: int
    name: str
    method_type: str
    channel: str = ''
    for_expenses: bool = False

    @property
    def is_cash(self) -> bool:
        return self.method_type == 'cash'


@dataclass(frozen=True)
class SalesLine:
    payment_method_id: Optional[int]
    method_type: str
    is_cash: bool
    gross_amount: Decimal
    net_amount: Decimal
    returns_amount: Decimal = ZERO
    payment_method_name: str = ''
    channel_tag: str = ''


@dataclass(frozen=True)
class PaymentRecord:
    is_cash: bool
    amount: Decimal
    method_type: str = 'cash'
    payment_method_id: Optional[int] = None


@dataclass(frozen=True)
class ExpenseLine:
    description: str
    amount: Decimal
    category_id: Optional[int] = None
    vendor_id: Optional[int] = None
    payments: List[PaymentRecord] = field(default_factory=list)
    id: Optional[int] = None
    created_by_id: Optional[int] = None


@dataclass(frozen=True)
class AuditEvent:
    org_id: int
    user_id: Optional[int]
    action: str
    entity_type: str
    entity_id: str
    entity_name: str = ''
    shop_id: Optional[int] = None
    user_name: str = ''
    user_role: str = ''
    metadata: Dict = field(default_factory=dict)


class RegisterStore:
    """Operations the register engine performs against storage."""

    # reads
    def resolve_identity(self, user) -> Identity:
        raise NotImplementedError

    def get_shop(self, shop_id: int) -> Optional[ShopRecord]:
        raise NotImplementedError

    def list_shops(self, org_id: int) -> List[ShopRecord]:
        raise NotImplementedError

    def get_day(self, shop_id: int, log_date: date) -> Optional[DaySummary]:
        raise NotImplementedError

    def get_opening_cash(self, shop_id: int, log_date: date) -> Optional[Decimal]:
        """Actual closing of the latest earlier day, or None when there is none."""
        raise NotImplementedError

    def get_sales_lines(self, day_id: int) -> List[SalesLine]:
        raise NotImplementedError

    def get_expense_lines(self, day_id: int) -> List[ExpenseLine]:
        raise NotImplementedError

    def get_active_payment_methods(self, org_id: int) -> List[PaymentMethodInfo]:
        raise NotImplementedError

    def get_default_expense_category(self, org_id: int) -> Optional[int]:
        raise NotImplementedError

    def get_expense_payment_method(self, org_id: int, method_type: str) -> Optional[int]:
        raise NotImplementedError

    def recent_expense_descriptions(self, org_id: int, limit: int = 100) -> List[str]:
        raise NotImplementedError

    def list_days(self, org_id: int, shop_id: Optional[int] = None,
                  start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[DaySummary]:
        raise NotImplementedError

    # writes
    def atomic(self):
        raise NotImplementedError

    def upsert_day_summary(self, key: DayKey, fields: Dict) -> int:
        raise NotImplementedError

    def replace_sales_lines(self, day_id: int, lines: List[SalesLine]) -> None:
        raise NotImplementedError

    def replace_expense_lines(self, day_id: int, lines: List[ExpenseLine]) -> None:
        raise NotImplementedError

    def update_day_status(self, day_id: int, fields: Dict) -> None:
        raise NotImplementedError

    def write_audit_record(self, event: AuditEvent) -> None:
        raise NotImplementedError


@contextmanager
def _guard(error_cls, message: str):
    try:
        yield
    except (DatabaseError, InvalidOperation) as exc:
        raise error_cls(f'{message}: {exc}') from exc


def _summary(log) -> DaySummary:
    return DaySummary(
        id=log.pk,
        shop_id=log.shop_id,
        org_id=log.organization_id,
        log_date=log.log_date,
        status=log.status or 'draft',
        opening_cash=log.opening_cash,
        gross_sales=log.gross_sales,
        cash_sales=log.cash_sales,
        total_cash_expenses=log.total_cash_expenses,
        total_online_expenses=log.total_online_expenses,
        expected_closing=log.expected_closing,
        actual_closing=log.actual_closing,
        variance=log.variance,
        variance_reason=log.variance_reason,
        notes=log.notes,
        shop_code=log.shop.code,
        updated_at=log.updated_at,
    )


def _shop(shop) -> ShopRecord:
    return ShopRecord(id=shop.pk, org_id=shop.organization_id, code=shop.code, name=shop.name)


class DjangoRegisterStore(RegisterStore):
    """RegisterStore backed by the daily_register and shops models."""

    def resolve_identity(self, user) -> Identity:
        if user is None or not getattr(user, 'is_authenticated', False):
            raise AuthError('Not authenticated')
        with _guard(FetchError, 'Could not load user profile'):
            profile = Profile.objects.select_related('role').filter(user_id=user.pk).first()
        if profile is None or profile.organization_id is None:
            raise AuthError('User has no organization')
        name = profile.full_name or user.get_full_name() or user.email or user.get_username() or 'Unknown'
        role = profile.role.name if profile.role else 'Unknown'
        return Identity(user_id=user.pk, org_id=profile.organization_id, name=name, role=role, email=user.email or '')

    def get_shop(self, shop_id):
        with _guard(FetchError, f'Could not load shop {shop_id}'):
            shop = Shop.objects.filter(pk=shop_id).first()
        return _shop(shop) if shop else None

    def list_shops(self, org_id):
        with _guard(FetchError, 'Could not load shops'):
            rows = list(Shop.objects.filter(organization_id=org_id, is_active=True).order_by('display_order', 'name'))
        return [_shop(s) for s in rows]

    def get_day(self, shop_id, log_date):
        with _guard(FetchError, f'Could not load daily log for shop {shop_id} on {log_date}'):
            log = DailySalesLog.objects.select_related('shop').filter(shop_id=shop_id, log_date=log_date).first()
        return _summary(log) if log else None

    def get_opening_cash(self, shop_id, log_date):
        with _guard(FetchError, 'Could not load previous closing'):
            return (
                DailySalesLog.objects.filter(shop_id=shop_id, log_date__lt=log_date)
                .order_by('-log_date')
                .values_list('actual_closing', flat=True)
                .first()
            )

    def get_sales_lines(self, day_id):
        with _guard(FetchError, f'Could not load sales entries for log {day_id}'):
            entries = list(
                SalesEntry.objects.filter(daily_log_id=day_id).select_related('payment_method').order_by('created_at', 'id')
            )
        lines = []
        for e in entries:
            pm = e.payment_method
            lines.append(SalesLine(
                payment_method_id=e.payment_method_id,
                method_type=e.method_type or '',
                is_cash=e.is_cash,
                gross_amount=e.gross_amount,
                net_amount=e.net_amount,
                returns_amount=e.returns_amount,
                payment_method_name=pm.name if pm else '',
                channel_tag=pm.channel if pm else '',
            ))
        return lines

    def get_expense_lines(self, day_id):
        with _guard(FetchError, f'Could not load expenses for log {day_id}'):
            expenses = list(Expense.objects.filter(daily_log_id=day_id).prefetch_related('payments').order_by('created_at', 'id'))
        return [
            ExpenseLine(
                id=exp.pk,
                description=exp.description or '',
                amount=exp.amount,
                category_id=exp.category_id,
                vendor_id=exp.vendor_id,
                payments=[
                    PaymentRecord(is_cash=p.is_cash, amount=p.amount, method_type=p.method_type,
                                  payment_method_id=p.payment_method_id)
                    for p in exp.payments.all()
                ],
            )
            for exp in expenses
        ]

    def get_active_payment_methods(self, org_id):
        with _guard(FetchError, 'Could not load payment methods'):
            rows = list(PaymentMethod.objects.filter(organization_id=org_id, is_active=True, for_sales=True)
                        .order_by('display_order', 'name'))
        return [
            PaymentMethodInfo(id=m.pk, name=m.name, method_type=m.method_type, channel=m.channel, for_expenses=m.for_expenses)
            for m in rows
        ]

    def get_default_expense_category(self, org_id):
        with _guard(FetchError, 'Could not load expense categories'):
            return (
                ExpenseCategory.objects.filter(organization_id=org_id, is_active=True)
                .order_by('display_order', 'name')
                .values_list('id', flat=True)
                .first()
            )

    def get_expense_payment_method(self, org_id, method_type):
        with _guard(FetchError, f'Could not load {method_type} expense payment method'):
            return (
                PaymentMethod.objects.filter(organization_id=org_id, method_type=method_type, for_expenses=True, is_active=True)
                .order_by('display_order', 'name')
                .values_list('id', flat=True)
                .first()
            )

    def recent_expense_descriptions(self, org_id, limit=100):
        with _guard(FetchError, 'Could not load expense descriptions'):
            return list(
                Expense.objects.filter(organization_id=org_id)
                .exclude(description='')
                .order_by('-created_at', '-id')
                .values_list('description', flat=True)[:limit]
            )

    def list_days(self, org_id, shop_id=None, start_date=None, end_date=None):
        qs = DailySalesLog.objects.select_related('shop').filter(organization_id=org_id)
        if shop_id:
            qs = qs.filter(shop_id=shop_id)
        if start_date:
            qs = qs.filter(log_date__gte=start_date)
        if end_date:
            qs = qs.filter(log_date__lte=end_date)
        with _guard(FetchError, 'Could not load daily logs'):
            rows = list(qs.order_by('-log_date', 'shop__display_order'))
        return [_summary(r) for r in rows]

    def atomic(self):
        return transaction.atomic()

    def upsert_day_summary(self, key, fields):
        with _guard(PersistError, f'Could not save daily log for shop {key.shop_id} on {key.log_date}'):
            log, created = DailySalesLog.objects.update_or_create(
                shop_id=key.shop_id,
                log_date=key.log_date,
                defaults={'organization_id': key.org_id, **fields},
            )
        logger.debug("%s daily log %s", 'Created' if created else 'Updated', log.pk)
        return log.pk

    def replace_sales_lines(self, day_id, lines):
        with _guard(PersistError, f'Could not replace sales entries for log {day_id}'), transaction.atomic():
            log_date = DailySalesLog.objects.values_list('log_date', flat=True).get(pk=day_id)
            SalesEntry.objects.filter(daily_log_id=day_id).delete()
            bulk = [
                SalesEntry(
                    daily_log_id=day_id,
                    entry_date=log_date,
                    payment_method_id=ln.payment_method_id,
                    method_type=ln.method_type,
                    is_cash=ln.is_cash,
                    gross_amount=ln.gross_amount,
                    returns_amount=ln.returns_amount,
                    net_amount=ln.net_amount,
                )
                for ln in lines
            ]
            if bulk:
                SalesEntry.objects.bulk_create(bulk)

    def replace_expense_lines(self, day_id, lines):
        with _guard(PersistError, f'Could not replace expenses for log {day_id}'), transaction.atomic():
            log = DailySalesLog.objects.get(pk=day_id)
            # payments go with their expense (CASCADE)
            Expense.objects.filter(daily_log_id=day_id).delete()
            payments = []
            for ln in lines:
                expense = Expense.objects.create(
                    organization_id=log.organization_id,
                    shop_id=log.shop_id,
                    daily_log_id=day_id,
                    expense_date=log.log_date,
                    category_id=ln.category_id,
                    vendor_id=ln.vendor_id,
                    description=ln.description,
                    amount=ln.amount,
                    payment_status='paid',
                    created_by_id=ln.created_by_id,
                )
                for p in ln.payments:
                    payments.append(ExpensePayment(
                        expense=expense,
                        payment_method_id=p.payment_method_id,
                        method_type=p.method_type,
                        is_cash=p.is_cash,
                        amount=p.amount,
                        payment_date=log.log_date,
                    ))
            if payments:
                ExpensePayment.objects.bulk_create(payments)

    def update_day_status(self, day_id, fields):
        with _guard(PersistError, f'Could not update status of log {day_id}'):
            DailySalesLog.objects.filter(pk=day_id).update(updated_at=timezone.now(), **fields)

    def write_audit_record(self, event):
        # own savepoint so a failed insert leaves the caller's transaction usable
        with _guard(AuditError, 'Could not write activity log'), transaction.atomic():
            ActivityLog.objects.create(
                organization_id=event.org_id,
                user_id=event.user_id,
                user_name=event.user_name[:150],
                user_role=event.user_role[:50],
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                entity_name=event.entity_name[:120],
                shop_id=event.shop_id,
                metadata=event.metadata,
            )
