from __future__ import annotations

from fastapi import FastAPI, Request, Response

from stock_data.api.routes import router
from stock_data.config.settings import get_settings

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, x-client-info, apikey, content-type',
}


app = FastAPI(title="Stock Data Gateway", version="0.1.0")
app.include_router(router, prefix="/v1")


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    if request.method == 'OPTIONS':
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


# NOTE: lazy-loaded so app import does not require env during tests.
app.state.get_settings = get_settings
app.state.quote_resolver = None
