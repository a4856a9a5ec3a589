from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from lexhold.api.legal_holds import router as legal_holds_router
from lexhold.api.notification_preferences import (
    router as notification_preferences_router,
)
from lexhold.errors import register_error_handlers
from lexhold.logging import configure_logging

app = FastAPI(title="Legal Hold Compliance API")

configure_logging()
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(legal_holds_router)
_include_api_router(notification_preferences_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
