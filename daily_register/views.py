import json
import logging
from functools import wraps

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.core.cache import cache
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .exceptions import RegisterError
from .forms import RegisterReportFilterForm
from .serializers import (
    apply_payload, parse_date, parse_shop_id, register_to_dict, shop_to_dict, summary_to_dict,
)
from .services.engine import (
    RegisterContext, authorize_shop, change_status, expense_suggestions, fetch_register, list_shops,
    register_cache_key, register_report, save_register,
)
from .services.store import DjangoRegisterStore

logger = logging.getLogger(__name__)


def _context(request: HttpRequest) -> RegisterContext:
    return RegisterContext(store=DjangoRegisterStore(), user=request.user, cache=cache)


def _register_api(view):
    """Turn RegisterError into {'error': ...} with the error's status code."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except RegisterError as exc:
            if exc.status_code >= 500:
                logger.error("%s failed: %s", request.path, exc)
            return JsonResponse({'error': str(exc)}, status=exc.status_code)
    return wrapper


def _json_body(request: HttpRequest):
    try:
        payload = json.loads(request.body.decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


@login_required
@require_GET
@_register_api
def api_register(request: HttpRequest):
    """Return the register for one shop and day.

    Query params:
      - shop: shop id (required)
      - date: optional ISO date YYYY-MM-DD, defaults to today (server TZ)
    Days never saved come back as an empty draft with opening cash carried
    from the previous closing.
    """
    shop_id = parse_shop_id(request.GET.get('shop'))
    log_date = parse_date(request.GET.get('date'))
    ctx = _context(request)
    authorize_shop(ctx, shop_id)

    key = register_cache_key(shop_id, log_date)
    data = cache.get(key)
    if data is None:
        data = register_to_dict(fetch_register(ctx, shop_id, log_date))
        cache.set(key, data, settings.REGISTER_CACHE_SECONDS)
    return JsonResponse(data)


@login_required
@require_POST
@_register_api
def api_register_save(request: HttpRequest):
    """Persist a register.

    Expected JSON body: the shape returned by api_register. Only sales
    amounts, expense rows, actual cash, opening cash (first day only),
    status, variance_reason and notes are read.
    Returns { status, log_id, created, message, warnings }
    """
    payload = _json_body(request)
    if payload is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    shop_id = parse_shop_id(payload.get('shop'))
    log_date = parse_date(payload.get('date'))
    ctx = _context(request)
    authorize_shop(ctx, shop_id)

    day = apply_payload(fetch_register(ctx, shop_id, log_date), payload)
    result = save_register(ctx, day)
    return JsonResponse({
        'status': 'ok',
        'log_id': result.log_id,
        'created': result.created,
        'message': result.message,
        'warnings': list(result.warnings),
    })


@login_required
@require_POST
@_register_api
def api_register_status(request: HttpRequest):
    """Move a saved register forward. Body: { shop, date, status }"""
    payload = _json_body(request)
    if payload is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    shop_id = parse_shop_id(payload.get('shop'))
    log_date = parse_date(payload.get('date'))
    new_status = str(payload.get('status') or '').strip()
    summary = change_status(_context(request), shop_id, log_date, new_status)
    return JsonResponse({'status': summary.status, 'log_id': summary.id, 'date': log_date.isoformat()})


@login_required
@require_GET
@_register_api
def api_expense_suggestions(request: HttpRequest):
    return JsonResponse({'suggestions': expense_suggestions(_context(request))})


@login_required
@require_GET
@_register_api
def api_shops(request: HttpRequest):
    return JsonResponse({'shops': [shop_to_dict(s) for s in list_shops(_context(request))]})


@login_required
@require_GET
@_register_api
def api_register_report(request: HttpRequest):
    """Stored registers for the organization.

    Query params: shop, start_date, end_date (all optional).
    """
    ctx = _context(request)
    identity = ctx.store.resolve_identity(request.user)
    form = RegisterReportFilterForm(request.GET, org_id=identity.org_id)
    if not form.is_valid():
        return JsonResponse({'error': 'Invalid filter', 'fields': form.errors.get_json_data()}, status=400)
    shop = form.cleaned_data.get('shop')
    rows = register_report(
        ctx,
        shop_id=shop.pk if shop else None,
        start_date=form.cleaned_data.get('start_date'),
        end_date=form.cleaned_data.get('end_date'),
    )
    return JsonResponse({'rows': [summary_to_dict(r) for r in rows]})
