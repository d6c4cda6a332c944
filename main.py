"""
Local server - both endpoints on one event loop
"""
import logging

import uvicorn
from fastapi import FastAPI, Request, Response

import config
import handlers

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

app = FastAPI(title="order-count-api", version="1.0.0")

# Tests replace this with Services built on a fake connector
app.state.services = None


def _to_response(response: handlers.HttpResponse) -> Response:
    return Response(
        content=response.text(),
        status_code=response.status_code,
        headers=response.headers,
    )


@app.api_route("/total-orders", methods=["GET", "OPTIONS"])
async def total_orders(request: Request):
    response = await handlers.total_orders(
        request.method, dict(request.query_params), request.app.state.services
    )
    return _to_response(response)


@app.api_route("/exact-order-count", methods=["GET", "OPTIONS"])
async def exact_order_count(request: Request):
    response = await handlers.exact_order_count(
        request.method, dict(request.query_params), request.app.state.services
    )
    return _to_response(response)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


def main():
    print("=" * 60)
    print("ORDER COUNT API")
    print("=" * 60)
    print(f"Store: {config.SHOPIFY_DOMAIN or '(not configured)'}")
    print(f"Listening on http://{config.HOST}:{config.PORT}")
    print()
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == '__main__':
    main()
