from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from stock_data.errors import QuoteUnavailableError
from stock_data.schemas.quote import QuoteRequest
from stock_data.services.quote_cache import quote_cache
from stock_data.services.quote_resolver import QuoteResolver, build_quote_resolver

router = APIRouter()

_QUOTE_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE']


def _get_resolver(request: Request) -> QuoteResolver:
    state = request.app.state
    if getattr(state, 'quote_resolver', None) is None:
        state.quote_resolver = build_quote_resolver(state.get_settings(), quote_cache)
    return state.quote_resolver


def _resolve_response(request: Request, symbol: str | None) -> JSONResponse:
    try:
        quote = _get_resolver(request).resolve(symbol)
    except QuoteUnavailableError as exc:
        return JSONResponse(status_code=503, content={'error': str(exc)})
    except Exception as exc:
        print(f"[QUOTE][request_error] symbol={symbol!r} error={type(exc).__name__}:{exc}", flush=True)
        return JSONResponse(status_code=500, content={'error': str(exc)})
    return JSONResponse(status_code=200, content=quote.to_response())


@router.api_route('/fetch-stock-data', methods=_QUOTE_METHODS)
async def fetch_stock_data(request: Request):
    try:
        body = await request.json()
        symbol = QuoteRequest.model_validate(body).symbol
    except Exception as exc:
        print(f"[QUOTE][request_error] error={type(exc).__name__}:{exc}", flush=True)
        return JSONResponse(status_code=500, content={'error': str(exc) or 'Invalid request body'})
    return await run_in_threadpool(_resolve_response, request, symbol)


@router.get('/quotes/{symbol}')
def get_quote(symbol: str, request: Request):
    return _resolve_response(request, symbol)


@router.get('/metrics/quote')
def quote_metrics(request: Request):
    resolver = getattr(request.app.state, 'quote_resolver', None)
    cache = getattr(resolver, 'quote_cache', quote_cache)
    list_all = getattr(cache, 'list_all', None)
    metrics = {'cached_symbols': len(list_all()) if callable(list_all) else None}
    if resolver is not None:
        metrics.update(resolver.metrics())
    return metrics
