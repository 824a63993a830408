"""Daily register engine: fetch & derive, save, status changes and lookups.

Each operation receives a `RegisterContext` carrying the store, the acting
user and an optional cache, so the engine runs the same against the ORM
store or an in-memory fake.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from django.utils import timezone

from daily_register.exceptions import (
    AuditError, AuthError, ConfigError, RegisterLockedError, RegisterNotFound, RegisterValidationError,
)
from daily_register.services.register import (
    CHANNEL_IDS, CHANNELS, READ_ONLY_STATUSES, ZERO, CashReconciliation, ExpenseRow, RegisterDay, SalesRow,
    check_amount, clean_description, empty_register, recalculate, status_rank, variance_type,
)
from daily_register.services.store import (
    AuditEvent, DayKey, DaySummary, ExpenseLine, Identity, PaymentMethodInfo, PaymentRecord, RegisterStore,
    SalesLine, ShopRecord,
)

logger = logging.getLogger(__name__)

ENTITY_TYPE = 'daily_sales_log'
SUGGESTION_SOURCE_LIMIT = 100
SUGGESTION_LIMIT = 50

# method_type markers that name a channel explicitly
_MARKER_CHANNELS = {
    'upi': 'upi',
    'aggregator_swiggy': 'swiggy',
    'aggregator_zomato': 'zomato',
}
# substring of a payment method name -> channel, checked in order
_NAME_HINTS = (('upi', 'upi'), ('swiggy', 'swiggy'), ('zomato', 'zomato'))
# method_type written for a channel when no payment method matches
_FALLBACK_METHOD_TYPES = {
    'cash': 'cash',
    'upi': 'upi',
    'swiggy': 'aggregator_swiggy',
    'zomato': 'aggregator_zomato',
    'other': 'online',
}


@dataclass
class RegisterContext:
    store: RegisterStore
    user: Any = None
    cache: Any = None


@dataclass(frozen=True)
class SaveResult:
    success: bool
    log_id: int
    created: bool
    message: str
    warnings: Tuple[str, ...] = field(default_factory=tuple)


def register_cache_key(shop_id, log_date: date) -> str:
    return f'daily-register:{shop_id}:{log_date.isoformat()}'


def _invalidate(ctx: RegisterContext, shop_id, log_date: date) -> None:
    if ctx.cache is not None:
        ctx.cache.delete(register_cache_key(shop_id, log_date))


def _money(value: Decimal) -> float:
    return float(value)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_sales_line(line: SalesLine) -> str:
    """Channel for a stored sales line.

    Precedence: cash flag, explicit channel tag or method_type marker,
    payment method name, then 'other'.
    """
    method_type = (line.method_type or '').lower()
    if line.is_cash or method_type == 'cash':
        return 'cash'
    if line.channel_tag in CHANNEL_IDS:
        return line.channel_tag
    if method_type in _MARKER_CHANNELS:
        return _MARKER_CHANNELS[method_type]
    name = (line.payment_method_name or '').lower()
    for hint, channel in _NAME_HINTS:
        if hint in name:
            return channel
    return 'other'


def resolve_payment_method(channel: str, label: str,
                           methods: List[PaymentMethodInfo]) -> Tuple[Optional[int], str, bool]:
    """(payment method id, method_type, is_cash) to store for a sales channel."""
    for m in methods:
        if m.channel == channel:
            return m.id, m.method_type, m.is_cash
    # untagged catalogs: match on the channel label, or any cash method for cash
    needle = label.lower()
    for m in methods:
        if needle in m.name.lower() or (channel == 'cash' and m.method_type == 'cash'):
            return m.id, m.method_type, m.is_cash
    return None, _FALLBACK_METHOD_TYPES[channel], channel == 'cash'


def expense_is_cash(line: ExpenseLine) -> bool:
    return not line.payments or any(p.is_cash for p in line.payments)


# ---------------------------------------------------------------------------
# Fetch & derive
# ---------------------------------------------------------------------------

def _require_shop(ctx: RegisterContext, shop_id) -> ShopRecord:
    shop = ctx.store.get_shop(shop_id)
    if shop is None:
        raise RegisterNotFound(f'Shop {shop_id} not found')
    return shop


def authorize_shop(ctx: RegisterContext, shop_id) -> Tuple[Identity, ShopRecord]:
    """Acting identity and the shop, which must belong to the identity's organization."""
    identity = ctx.store.resolve_identity(ctx.user)
    shop = _require_shop(ctx, shop_id)
    if shop.org_id != identity.org_id:
        raise AuthError('Shop does not belong to your organization')
    return identity, shop


def fetch_register(ctx: RegisterContext, shop_id, log_date: date) -> RegisterDay:
    """Build the full register for (shop, date) from stored rows.

    Days that were never saved come back empty with opening cash carried
    from the latest earlier closing. Read failures raise FetchError.
    """
    shop = _require_shop(ctx, shop_id)
    store = ctx.store

    previous_closing = store.get_opening_cash(shop.id, log_date)
    has_previous = previous_closing is not None
    opening = previous_closing if has_previous else ZERO

    summary = store.get_day(shop.id, log_date)
    if summary is None:
        return empty_register(shop.id, log_date, shop_code=shop.code, shop_name=shop.name,
                              opening_cash=opening, is_opening_editable=not has_previous)

    amounts = {c: ZERO for c in CHANNEL_IDS}
    method_ids = {}
    for line in store.get_sales_lines(summary.id):
        channel = classify_sales_line(line)
        amounts[channel] += line.net_amount or ZERO
        if line.payment_method_id is not None:
            method_ids[channel] = line.payment_method_id
    sales = tuple(
        SalesRow(channel=c, label=label, amount=amounts[c], payment_method_id=method_ids.get(c))
        for c, label in CHANNELS
    )

    cash_rows: List[ExpenseRow] = []
    online_rows: List[ExpenseRow] = []
    for line in store.get_expense_lines(summary.id):
        is_cash = expense_is_cash(line)
        row = ExpenseRow(
            row_id=str(line.id),
            description=line.description,
            amount=line.amount or ZERO,
            is_cash=is_cash,
            category_id=line.category_id,
            vendor_id=line.vendor_id,
        )
        (cash_rows if is_cash else online_rows).append(row)

    # a stored opening cash wins, it may have been entered by hand on the first day
    if summary.opening_cash is not None:
        opening = summary.opening_cash
    cash = CashReconciliation(
        opening_cash=opening,
        actual_cash=summary.actual_closing if summary.actual_closing is not None else ZERO,
        is_opening_editable=not has_previous,
    )
    day = RegisterDay(
        shop_id=shop.id,
        log_date=log_date,
        shop_code=shop.code,
        shop_name=shop.name,
        id=summary.id,
        status=summary.status,
        sales=sales,
        cash_expenses=tuple(cash_rows),
        online_expenses=tuple(online_rows),
        cash=cash,
        variance_reason=summary.variance_reason,
        notes=summary.notes,
        last_saved_at=summary.updated_at,
    )
    return recalculate(day)


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------

def _validate_for_save(day: RegisterDay, existing: Optional[DaySummary]) -> None:
    status_rank(day.status)
    if existing is not None and existing.status in READ_ONLY_STATUSES:
        raise RegisterLockedError(f'Register for {day.log_date} is {existing.status} and cannot be changed')
    if day.status in READ_ONLY_STATUSES:
        raise RegisterLockedError(f'Use a status change to mark a register {day.status}')
    if existing is not None and status_rank(day.status) < status_rank(existing.status):
        raise RegisterValidationError(f'Cannot move register from {existing.status} back to {day.status}')
    if day.total_sales < 0:
        raise RegisterValidationError('Total sales cannot be negative')
    if day.total_expenses < 0:
        raise RegisterValidationError('Total expenses cannot be negative')
    for row in day.sales:
        check_amount(f'{row.label} sales', row.amount)
    for row in day.cash_expenses + day.online_expenses:
        check_amount('Expense amount', row.amount)
        clean_description(row.description)
    cash = day.cash
    for name, amount in (
        ('Total sales', day.total_sales),
        ('Total expenses', day.total_expenses),
        ('Opening cash', cash.opening_cash),
        ('Expected cash', cash.expected_cash),
        ('Actual cash', cash.actual_cash),
        ('Cash difference', cash.difference),
    ):
        check_amount(name, amount)


def _summary_fields(day: RegisterDay, identity: Identity) -> dict:
    return {
        'opening_cash': day.cash.opening_cash,
        'gross_sales': day.total_sales,
        'net_sales': day.total_sales,
        'cash_sales': day.cash.todays_cash,
        'total_cash_expenses': day.total_cash_expenses,
        'total_online_expenses': day.total_online_expenses,
        'expected_closing': day.cash.expected_cash,
        'actual_closing': day.cash.actual_cash,
        'variance': day.cash.actual_cash - day.cash.expected_cash,
        'variance_reason': day.variance_reason,
        'notes': day.notes,
        'status': day.status,
        'logged_by_id': identity.user_id,
    }


def _sales_lines(day: RegisterDay, methods: List[PaymentMethodInfo]) -> List[SalesLine]:
    lines = []
    for row in day.sales:
        if row.amount <= 0:
            continue
        method_id, method_type, is_cash = resolve_payment_method(row.channel, row.label, methods)
        if method_id is None:
            logger.info("No payment method for channel %s on %s; storing by type only", row.channel, day.log_date)
        lines.append(SalesLine(
            payment_method_id=method_id,
            method_type=method_type,
            is_cash=is_cash,
            gross_amount=row.amount,
            returns_amount=ZERO,
            net_amount=row.amount,
        ))
    return lines


def _expense_line(row: ExpenseRow, is_cash: bool, default_category: Optional[int],
                  payment_method_id: Optional[int], user_id: int) -> ExpenseLine:
    category_id = row.category_id or default_category
    if category_id is None:
        raise ConfigError('No default expense category configured')
    return ExpenseLine(
        description=row.description,
        amount=row.amount,
        category_id=category_id,
        vendor_id=row.vendor_id,
        created_by_id=user_id,
        payments=[PaymentRecord(
            is_cash=is_cash,
            amount=row.amount,
            method_type='cash' if is_cash else 'bank',
            payment_method_id=payment_method_id,
        )],
    )


def _expense_lines(ctx: RegisterContext, day: RegisterDay, identity: Identity, warnings: List[str]) -> List[ExpenseLine]:
    store = ctx.store
    default_category = store.get_default_expense_category(identity.org_id)
    method_ids = {
        True: store.get_expense_payment_method(identity.org_id, 'cash'),
        False: store.get_expense_payment_method(identity.org_id, 'bank'),
    }
    for is_cash, method_id in method_ids.items():
        has_rows = any(r.description and r.amount > 0 for r in day.expenses(is_cash))
        if method_id is None and has_rows:
            kind = 'cash' if is_cash else 'bank'
            msg = f'No default {kind} payment method for expenses; payments saved without a method'
            logger.warning("%s (org %s)", msg, identity.org_id)
            warnings.append(msg)

    lines = []
    for is_cash in (True, False):
        for row in day.expenses(is_cash):
            if not row.description or row.amount <= 0:
                continue
            try:
                lines.append(_expense_line(row, is_cash, default_category, method_ids[is_cash], identity.user_id))
            except ConfigError as exc:
                msg = f'Skipped expense {row.description!r}: {exc}'
                logger.warning("%s (org %s, %s)", msg, identity.org_id, day.log_date)
                warnings.append(msg)
    return lines


def _totals_metadata(total_sales, total_expenses, opening, expected, actual) -> dict:
    variance = actual - expected
    return {
        'total_sales': _money(total_sales),
        'total_expenses': _money(total_expenses),
        'opening_cash': _money(opening),
        'expected_cash': _money(expected),
        'actual_cash': _money(actual),
        'variance': _money(variance),
        'variance_type': variance_type(variance),
    }


def _audit_event(day: RegisterDay, identity: Identity, shop: ShopRecord, log_id: int,
                 existing: Optional[DaySummary]) -> AuditEvent:
    created = existing is None
    metadata = {
        'filled_by_name': identity.name,
        'filled_by_role': identity.role,
        'filled_by_email': identity.email,
        'timestamp': timezone.now().isoformat(),
        'action_type': 'created' if created else 'edited',
        'cash_sales': _money(day.cash.todays_cash),
        'cash_expenses': _money(day.cash.todays_expense),
        **_totals_metadata(day.total_sales, day.total_expenses, day.cash.opening_cash,
                           day.cash.expected_cash, day.cash.actual_cash),
    }
    if existing is not None:
        metadata['previous'] = _totals_metadata(
            existing.gross_sales,
            existing.total_cash_expenses + existing.total_online_expenses,
            existing.opening_cash if existing.opening_cash is not None else ZERO,
            existing.expected_closing,
            existing.actual_closing if existing.actual_closing is not None else ZERO,
        )
    return AuditEvent(
        org_id=identity.org_id,
        user_id=identity.user_id,
        user_name=identity.name,
        user_role=identity.role,
        action='record.create' if created else 'record.update',
        entity_type=ENTITY_TYPE,
        entity_id=str(log_id),
        entity_name=f'{shop.code} - {day.log_date.isoformat()}',
        shop_id=shop.id,
        metadata=metadata,
    )


def _write_audit(ctx: RegisterContext, event: AuditEvent) -> None:
    try:
        ctx.store.write_audit_record(event)
    except AuditError:
        logger.warning("Activity log failed for %s %s (non-critical)", event.entity_type, event.entity_id, exc_info=True)


def save_register(ctx: RegisterContext, day: RegisterDay) -> SaveResult:
    """Persist `day` as the authoritative state for its (shop, date).

    The summary row is upserted and the day's sales and expense lines are
    replaced inside one transaction. The activity record is best-effort.
    """
    try:
        identity, shop = authorize_shop(ctx, day.shop_id)
        store = ctx.store
        existing = store.get_day(shop.id, day.log_date)
        day = recalculate(day)
        _validate_for_save(day, existing)

        warnings: List[str] = []
        key = DayKey(org_id=identity.org_id, shop_id=shop.id, log_date=day.log_date)
        with store.atomic():
            log_id = store.upsert_day_summary(key, _summary_fields(day, identity))
            methods = store.get_active_payment_methods(identity.org_id)
            store.replace_sales_lines(log_id, _sales_lines(day, methods))
            store.replace_expense_lines(log_id, _expense_lines(ctx, day, identity, warnings))

        _write_audit(ctx, _audit_event(day, identity, shop, log_id, existing))
    finally:
        _invalidate(ctx, day.shop_id, day.log_date)

    logger.info("Saved daily register %s for %s on %s (variance %s)",
                log_id, shop.code, day.log_date, day.cash.difference)
    return SaveResult(
        success=True,
        log_id=log_id,
        created=existing is None,
        message='Saved successfully',
        warnings=tuple(warnings),
    )


# ---------------------------------------------------------------------------
# Status lifecycle
# ---------------------------------------------------------------------------

def change_status(ctx: RegisterContext, shop_id, log_date: date, new_status: str) -> DaySummary:
    """Move a saved day forward: draft -> submitted -> verified -> locked."""
    identity, shop = authorize_shop(ctx, shop_id)
    store = ctx.store
    existing = store.get_day(shop.id, log_date)
    if existing is None:
        raise RegisterNotFound(f'No register saved for {shop.code} on {log_date}')
    new_rank = status_rank(new_status)
    if existing.status == 'locked':
        raise RegisterLockedError(f'Register for {log_date} is locked')
    if new_rank <= status_rank(existing.status):
        raise RegisterValidationError(f'Cannot move register from {existing.status} to {new_status}')

    now = timezone.now()
    fields = {'status': new_status}
    if new_status == 'verified':
        fields.update(verified_by_id=identity.user_id, verified_at=now)
    elif new_status == 'locked':
        fields['locked_at'] = now
    store.update_day_status(existing.id, fields)
    _invalidate(ctx, shop.id, log_date)

    _write_audit(ctx, AuditEvent(
        org_id=identity.org_id,
        user_id=identity.user_id,
        user_name=identity.name,
        user_role=identity.role,
        action='record.status_change',
        entity_type=ENTITY_TYPE,
        entity_id=str(existing.id),
        entity_name=f'{shop.code} - {log_date.isoformat()}',
        shop_id=shop.id,
        metadata={'from': existing.status, 'to': new_status, 'timestamp': now.isoformat()},
    ))
    logger.info("Daily register %s moved %s -> %s by user %s", existing.id, existing.status, new_status, identity.user_id)
    return replace(existing, status=new_status)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def expense_suggestions(ctx: RegisterContext) -> List[str]:
    """Distinct recent expense descriptions for the user's organization, newest first."""
    identity = ctx.store.resolve_identity(ctx.user)
    seen = []
    for desc in ctx.store.recent_expense_descriptions(identity.org_id, SUGGESTION_SOURCE_LIMIT):
        if desc and desc not in seen:
            seen.append(desc)
    return seen[:SUGGESTION_LIMIT]


def list_shops(ctx: RegisterContext) -> List[ShopRecord]:
    identity = ctx.store.resolve_identity(ctx.user)
    return ctx.store.list_shops(identity.org_id)


def register_report(ctx: RegisterContext, shop_id=None, start_date: Optional[date] = None,
                    end_date: Optional[date] = None) -> List[DaySummary]:
    if shop_id:
        authorize_shop(ctx, shop_id)
    identity = ctx.store.resolve_identity(ctx.user)
    return ctx.store.list_days(identity.org_id, shop_id=shop_id, start_date=start_date, end_date=end_date)
