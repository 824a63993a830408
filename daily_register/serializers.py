"""JSON shapes for the register API.

Amounts go over the wire as 2dp strings so nothing is lost to float
rounding. Incoming amounts accept numbers or strings; blanks count as 0.
"""
from dataclasses import replace
from datetime import date

from django.utils import timezone

from daily_register.exceptions import RegisterLockedError, RegisterValidationError
from daily_register.services.register import (
    CHANNEL_IDS, ExpenseRow, RegisterDay, clean_description, new_row_id, recalculate, status_rank, to_amount,
    variance_type,
)


def _amount(value) -> str:
    return f'{value:.2f}'


def _optional_id(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RegisterValidationError(f'Invalid id: {value!r}') from None


def _text(value, field_name: str) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise RegisterValidationError(f'{field_name} must be text')
    return value.strip()


def parse_date(value, field_name='date') -> date:
    """YYYY-MM-DD to a date; missing means today in the server timezone."""
    if not value:
        return timezone.localdate()
    try:
        return timezone.datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise RegisterValidationError(f'Invalid {field_name} format, expected YYYY-MM-DD') from None


def parse_shop_id(value) -> int:
    shop_id = _optional_id(value)
    if shop_id is None:
        raise RegisterValidationError('shop is required')
    return shop_id


def _expense_dict(row: ExpenseRow) -> dict:
    return {
        'row_id': row.row_id,
        'description': row.description,
        'amount': _amount(row.amount),
        'is_cash': row.is_cash,
        'category_id': row.category_id,
        'vendor_id': row.vendor_id,
    }


def register_to_dict(day: RegisterDay) -> dict:
    cash = day.cash
    return {
        'id': day.id,
        'shop': day.shop_id,
        'shop_code': day.shop_code,
        'shop_name': day.shop_name,
        'date': day.log_date.isoformat(),
        'status': day.status,
        'is_editable': day.is_editable,
        'sales': [
            {'channel': s.channel, 'label': s.label, 'amount': _amount(s.amount), 'payment_method_id': s.payment_method_id}
            for s in day.sales
        ],
        'total_sales': _amount(day.total_sales),
        'cash_expenses': [_expense_dict(r) for r in day.cash_expenses],
        'online_expenses': [_expense_dict(r) for r in day.online_expenses],
        'total_cash_expenses': _amount(day.total_cash_expenses),
        'total_online_expenses': _amount(day.total_online_expenses),
        'total_expenses': _amount(day.total_expenses),
        'cash': {
            'opening_cash': _amount(cash.opening_cash),
            'todays_cash': _amount(cash.todays_cash),
            'todays_expense': _amount(cash.todays_expense),
            'expected_cash': _amount(cash.expected_cash),
            'actual_cash': _amount(cash.actual_cash),
            'difference': _amount(cash.difference),
            'is_opening_editable': cash.is_opening_editable,
        },
        'variance_type': day.variance_type,
        'variance_reason': day.variance_reason,
        'notes': day.notes,
        'last_saved_at': day.last_saved_at.isoformat() if day.last_saved_at else None,
    }


def _expense_rows(raw, is_cash: bool):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        kind = 'cash_expenses' if is_cash else 'online_expenses'
        raise RegisterValidationError(f'{kind} must be a list')
    rows = []
    for item in raw:
        if not isinstance(item, dict):
            raise RegisterValidationError('Invalid expense row')
        rows.append(ExpenseRow(
            row_id=str(item.get('row_id') or new_row_id()),
            description=clean_description(item.get('description')),
            amount=to_amount(item.get('amount')),
            is_cash=is_cash,
            category_id=_optional_id(item.get('category_id')),
            vendor_id=_optional_id(item.get('vendor_id')),
        ))
    return tuple(rows)


def apply_payload(base: RegisterDay, payload: dict) -> RegisterDay:
    """Overlay the editable parts of a posted register onto the fetched day.

    Opening cash is only taken from the payload on a shop's first day;
    otherwise it stays carried from the previous closing.
    """
    if not base.is_editable:
        raise RegisterLockedError(f'Register for {base.log_date} is {base.status} and cannot be changed')

    amounts = {}
    raw_sales = payload.get('sales') or []
    if not isinstance(raw_sales, list):
        raise RegisterValidationError('sales must be a list')
    for item in raw_sales:
        channel = item.get('channel') if isinstance(item, dict) else None
        if channel not in CHANNEL_IDS:
            raise RegisterValidationError(f'Unknown sales channel: {channel!r}')
        amounts[channel] = to_amount(item.get('amount'))
    sales = tuple(replace(s, amount=amounts.get(s.channel, s.amount)) for s in base.sales)

    cash_in = payload.get('cash') or {}
    if not isinstance(cash_in, dict):
        raise RegisterValidationError('cash must be an object')
    cash = base.cash
    if 'actual_cash' in cash_in:
        cash = replace(cash, actual_cash=to_amount(cash_in.get('actual_cash')))
    if cash.is_opening_editable and 'opening_cash' in cash_in:
        cash = replace(cash, opening_cash=to_amount(cash_in.get('opening_cash')))

    status = payload.get('status') or base.status
    status_rank(status)

    day = replace(
        base,
        status=status,
        sales=sales,
        cash_expenses=_expense_rows(payload.get('cash_expenses'), True),
        online_expenses=_expense_rows(payload.get('online_expenses'), False),
        cash=cash,
        variance_reason=_text(payload.get('variance_reason'), 'variance_reason'),
        notes=_text(payload.get('notes'), 'notes'),
    )
    return recalculate(day)


def summary_to_dict(summary) -> dict:
    total_expenses = summary.total_cash_expenses + summary.total_online_expenses
    return {
        'id': summary.id,
        'shop': summary.shop_id,
        'shop_code': summary.shop_code,
        'date': summary.log_date.isoformat(),
        'status': summary.status,
        'total_sales': _amount(summary.gross_sales),
        'cash_sales': _amount(summary.cash_sales),
        'total_expenses': _amount(total_expenses),
        'opening_cash': _amount(summary.opening_cash) if summary.opening_cash is not None else None,
        'expected_cash': _amount(summary.expected_closing),
        'actual_cash': _amount(summary.actual_closing) if summary.actual_closing is not None else None,
        'variance': _amount(summary.variance),
        'variance_type': variance_type(summary.variance),
        'variance_reason': summary.variance_reason,
    }


def shop_to_dict(shop) -> dict:
    return {'id': shop.id, 'code': shop.code, 'name': shop.name}
