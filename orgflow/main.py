import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orgflow.api.routers.audit import router as audit_router
from orgflow.api.routers.auth import router as auth_router
from orgflow.api.routers.employees import router as employees_router
from orgflow.api.routers.requests import router as requests_router
from orgflow.core.config import settings
from orgflow.core.errors import OrgFlowError
from orgflow.core.logging import configure_logging

configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description=(
        "Organizational hierarchy and role-gated request approval core for HR administration: "
        "acyclic reporting lines, derived permissions and a three-stage approval chain."
    ),
)


@app.exception_handler(OrgFlowError)
def orgflow_error_handler(request: Request, exc: OrgFlowError) -> JSONResponse:
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
    )


@app.get("/")
def health() -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name}


app.include_router(auth_router)
app.include_router(employees_router)
app.include_router(requests_router)
app.include_router(audit_router)
