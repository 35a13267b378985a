from fastapi import APIRouter, Depends
from fastapi.responses import Response

from mockcrm.admin.api import router as admin_router
from mockcrm.auth.api import router as auth_router
from mockcrm.core.auth import get_current_principal
from mockcrm.core.config import get_settings
from mockcrm.crm.api import customers_router, deals_router, tasks_router
from mockcrm.metrics import generate_metrics_payload, metrics_content_type
from mockcrm.platform.security import Forbidden, NotFound, Principal

router = APIRouter()
router.include_router(auth_router)
router.include_router(deals_router)
router.include_router(customers_router)
router.include_router(tasks_router)
router.include_router(admin_router)


@router.get("/api/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics(principal: Principal = Depends(get_current_principal)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFound("not found")
    if not principal.is_admin:
        raise Forbidden("admin access required")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
