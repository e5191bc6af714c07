"""
版本历史 API 端点

- GET  /projects/{project_id}/versions/{phase}: 版本历史（最新在前，不含正文）
- GET  /projects/{project_id}/versions/{phase}/{version_number}: 单个版本
- POST /projects/{project_id}/versions/{phase}/{version_number}/restore: 恢复版本
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from researchflow.core.exceptions import NotFoundError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.domain import VersionSummary, VersionView
from researchflow.services.content_version_manager import ContentVersionManager
from .deps import get_current_user_id, get_uow

router = APIRouter(prefix="/projects/{project_id}/versions", tags=["versions"])


class RestoreResponse(BaseModel):
    """恢复版本响应"""
    ok: bool = True
    restored_version: int


@router.get("/{phase}", response_model=List[VersionSummary])
async def get_version_history(
    project_id: int,
    phase: str,
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """版本历史"""
    return await ContentVersionManager(uow).get_version_history(project_id, user_id, phase, limit=limit)


@router.get("/{phase}/{version_number}", response_model=VersionView)
async def get_version(
    project_id: int,
    phase: str,
    version_number: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """单个版本（含正文）"""
    version = await ContentVersionManager(uow).get_version(project_id, user_id, phase, version_number)
    if version is None:
        raise NotFoundError(
            "Version not found",
            details={"phase": phase, "version_number": version_number},
        )
    return version


@router.post("/{phase}/{version_number}/restore", response_model=RestoreResponse)
async def restore_version(
    project_id: int,
    phase: str,
    version_number: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """恢复到指定版本（会追加一个 "Restored from version N" 版本）"""
    restored = await ContentVersionManager(uow).restore_version(project_id, user_id, phase, version_number)
    if not restored:
        raise NotFoundError(
            "Version not found",
            details={"phase": phase, "version_number": version_number},
        )
    return RestoreResponse(restored_version=version_number)
