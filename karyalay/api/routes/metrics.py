from typing import Any

from fastapi import APIRouter, Depends

from karyalay.dependencies.auth import Role, role_required
from karyalay.metrics import metrics_registry

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="In-process metric snapshot", dependencies=[Depends(role_required(Role.ADMIN))])
async def read_metrics() -> dict[str, Any]:
    return metrics_registry.snapshot()
