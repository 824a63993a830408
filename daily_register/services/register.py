"""In-memory daily register and its recompute rules.

Every edit function takes a `RegisterDay` and returns a new one with all
dependent totals recomputed. Nothing here touches the database.

    expected_cash = opening_cash + todays_cash - todays_expense
    difference    = actual_cash - expected_cash   (+ excess, - short)
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from daily_register.exceptions import RegisterLockedError, RegisterValidationError

ZERO = Decimal('0.00')
CENT = Decimal('0.01')
# Largest magnitude the money columns hold (max_digits=12, decimal_places=2)
MAX_AMOUNT = Decimal('9999999999.99')
MAX_DESCRIPTION_LENGTH = 255

# Fixed sales channels in display order: (channel id, label)
CHANNELS: Tuple[Tuple[str, str], ...] = (
    ('cash', 'Cash'),
    ('upi', 'UPI'),
    ('swiggy', 'Swiggy'),
    ('zomato', 'Zomato'),
    ('other', 'Other Online'),
)
CHANNEL_IDS = tuple(c for c, _ in CHANNELS)

STATUSES = ('draft', 'submitted', 'verified', 'locked')
READ_ONLY_STATUSES = frozenset({'verified', 'locked'})


def to_amount(value) -> Decimal:
    """Coerce user input to a 2dp Decimal; blank, missing or non-numeric input is 0.

    Negative numbers pass through unchanged. Amounts beyond MAX_AMOUNT raise
    RegisterValidationError.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(',', '')
        if not text:
            return ZERO
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return ZERO
    if not amount.is_finite():
        return ZERO
    if abs(amount) > MAX_AMOUNT:
        raise RegisterValidationError(f'Amount out of range: {value!r}')
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise RegisterValidationError(f'Amount out of range: {value!r}') from None


def check_amount(name: str, amount: Decimal) -> None:
    """Raise when a computed total no longer fits the money columns."""
    if abs(amount) > MAX_AMOUNT:
        raise RegisterValidationError(f'{name} out of range: {amount}')


def clean_description(value) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise RegisterValidationError('Expense description must be text')
    text = value.strip()
    if len(text) > MAX_DESCRIPTION_LENGTH:
        raise RegisterValidationError(f'Expense description is longer than {MAX_DESCRIPTION_LENGTH} characters')
    return text


def status_rank(status: str) -> int:
    try:
        return STATUSES.index(status)
    except ValueError:
        raise RegisterValidationError(f'Unknown status: {status!r}') from None


def variance_type(difference: Decimal) -> str:
    if difference > 0:
        return 'excess'
    if difference < 0:
        return 'short'
    return 'matched'


def new_row_id() -> str:
    return f'row_{uuid.uuid4().hex[:12]}'


@dataclass(frozen=True)
class SalesRow:
    channel: str
    label: str
    amount: Decimal = ZERO
    payment_method_id: Optional[int] = None


@dataclass(frozen=True)
class ExpenseRow:
    row_id: str
    description: str = ''
    amount: Decimal = ZERO
    is_cash: bool = True
    category_id: Optional[int] = None
    vendor_id: Optional[int] = None


@dataclass(frozen=True)
class CashReconciliation:
    opening_cash: Decimal = ZERO
    todays_cash: Decimal = ZERO
    todays_expense: Decimal = ZERO
    expected_cash: Decimal = ZERO
    actual_cash: Decimal = ZERO
    difference: Decimal = ZERO
    is_opening_editable: bool = False


def default_sales() -> Tuple[SalesRow, ...]:
    return tuple(SalesRow(channel=c, label=label) for c, label in CHANNELS)


@dataclass(frozen=True)
class RegisterDay:
    shop_id: int
    log_date: date
    shop_code: str = ''
    shop_name: str = ''
    id: Optional[int] = None
    status: str = 'draft'
    sales: Tuple[SalesRow, ...] = field(default_factory=default_sales)
    total_sales: Decimal = ZERO
    cash_expenses: Tuple[ExpenseRow, ...] = ()
    online_expenses: Tuple[ExpenseRow, ...] = ()
    total_cash_expenses: Decimal = ZERO
    total_online_expenses: Decimal = ZERO
    total_expenses: Decimal = ZERO
    cash: CashReconciliation = field(default_factory=CashReconciliation)
    variance_reason: str = ''
    notes: str = ''
    last_saved_at: Optional[datetime] = None

    @property
    def is_editable(self) -> bool:
        return self.status not in READ_ONLY_STATUSES

    @property
    def variance_type(self) -> str:
        return variance_type(self.cash.difference)

    def sales_amount(self, channel: str) -> Decimal:
        for row in self.sales:
            if row.channel == channel:
                return row.amount
        raise RegisterValidationError(f'Unknown sales channel: {channel!r}')

    def expenses(self, is_cash: bool) -> Tuple[ExpenseRow, ...]:
        return self.cash_expenses if is_cash else self.online_expenses


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def _reconcile(cash: CashReconciliation, **changes) -> CashReconciliation:
    cash = replace(cash, **changes)
    expected = cash.opening_cash + cash.todays_cash - cash.todays_expense
    return replace(cash, expected_cash=expected, difference=cash.actual_cash - expected)


def _ensure_editable(day: RegisterDay) -> None:
    if not day.is_editable:
        raise RegisterLockedError(f'Register for {day.log_date} is {day.status} and cannot be edited')


def empty_register(shop_id: int, log_date: date, *, shop_code: str = '', shop_name: str = '',
                   opening_cash=ZERO, is_opening_editable: bool = False) -> RegisterDay:
    """A draft day with the five channels at zero and no expenses."""
    cash = _reconcile(CashReconciliation(), opening_cash=to_amount(opening_cash),
                      is_opening_editable=is_opening_editable)
    return RegisterDay(shop_id=shop_id, log_date=log_date, shop_code=shop_code,
                       shop_name=shop_name, cash=cash)


def recalculate(day: RegisterDay) -> RegisterDay:
    """Recompute every derived field from sales, expenses and the cash inputs."""
    total_cash_exp = _sum(e.amount for e in day.cash_expenses)
    total_online_exp = _sum(e.amount for e in day.online_expenses)
    cash = _reconcile(day.cash, todays_cash=day.sales_amount('cash'), todays_expense=total_cash_exp)
    return replace(
        day,
        total_sales=_sum(s.amount for s in day.sales),
        total_cash_expenses=total_cash_exp,
        total_online_expenses=total_online_exp,
        total_expenses=total_cash_exp + total_online_exp,
        cash=cash,
    )


def set_sales_amount(day: RegisterDay, channel: str, amount) -> RegisterDay:
    _ensure_editable(day)
    if channel not in CHANNEL_IDS:
        raise RegisterValidationError(f'Unknown sales channel: {channel!r}')
    value = to_amount(amount)
    sales = tuple(replace(s, amount=value) if s.channel == channel else s for s in day.sales)
    day = replace(day, sales=sales, total_sales=_sum(s.amount for s in sales))
    if channel == 'cash':
        day = replace(day, cash=_reconcile(day.cash, todays_cash=value))
    return day


def _with_expenses(day: RegisterDay, is_cash: bool, rows: Tuple[ExpenseRow, ...]) -> RegisterDay:
    total = _sum(r.amount for r in rows)
    if is_cash:
        return replace(
            day,
            cash_expenses=rows,
            total_cash_expenses=total,
            total_expenses=total + day.total_online_expenses,
            cash=_reconcile(day.cash, todays_expense=total),
        )
    return replace(
        day,
        online_expenses=rows,
        total_online_expenses=total,
        total_expenses=day.total_cash_expenses + total,
    )


def add_expense(day: RegisterDay, is_cash: bool, description: str = '', amount=ZERO, *,
                category_id: Optional[int] = None, vendor_id: Optional[int] = None,
                row_id: Optional[str] = None) -> RegisterDay:
    _ensure_editable(day)
    row = ExpenseRow(
        row_id=row_id or new_row_id(),
        description=clean_description(description),
        amount=to_amount(amount),
        is_cash=is_cash,
        category_id=category_id,
        vendor_id=vendor_id,
    )
    return _with_expenses(day, is_cash, day.expenses(is_cash) + (row,))


def _find_row(day: RegisterDay, is_cash: bool, row_id: str) -> ExpenseRow:
    for row in day.expenses(is_cash):
        if row.row_id == row_id:
            return row
    kind = 'cash' if is_cash else 'online'
    raise RegisterValidationError(f'No {kind} expense row {row_id!r}')


def update_expense(day: RegisterDay, is_cash: bool, row_id: str, *,
                   description: Optional[str] = None, amount=None,
                   category_id: Optional[int] = None, vendor_id: Optional[int] = None) -> RegisterDay:
    """Edit one expense row. Arguments left as None keep their current value."""
    _ensure_editable(day)
    target = _find_row(day, is_cash, row_id)
    changes = {}
    if description is not None:
        changes['description'] = clean_description(description)
    if amount is not None:
        changes['amount'] = to_amount(amount)
    if category_id is not None:
        changes['category_id'] = category_id
    if vendor_id is not None:
        changes['vendor_id'] = vendor_id
    updated = replace(target, **changes)
    rows = tuple(updated if r.row_id == row_id else r for r in day.expenses(is_cash))
    return _with_expenses(day, is_cash, rows)


def remove_expense(day: RegisterDay, is_cash: bool, row_id: str) -> RegisterDay:
    _ensure_editable(day)
    _find_row(day, is_cash, row_id)
    rows = tuple(r for r in day.expenses(is_cash) if r.row_id != row_id)
    return _with_expenses(day, is_cash, rows)


def set_actual_cash(day: RegisterDay, amount) -> RegisterDay:
    _ensure_editable(day)
    actual = to_amount(amount)
    cash = replace(day.cash, actual_cash=actual, difference=actual - day.cash.expected_cash)
    return replace(day, cash=cash)


def set_opening_cash(day: RegisterDay, amount) -> RegisterDay:
    """Manual opening cash, only for a shop's first day (no earlier closing)."""
    _ensure_editable(day)
    if not day.cash.is_opening_editable:
        raise RegisterValidationError("Opening cash is carried from the previous day's closing")
    return replace(day, cash=_reconcile(day.cash, opening_cash=to_amount(amount)))
