"""
旧版数据迁移 API 端点

- POST   /projects/{project_id}/migration: 迁移当前学习者的旧版记录
- DELETE /projects/{project_id}/migration: 回滚迁移
- GET    /migration/status: 全局迁移状态
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.domain import MigrationResult, MigrationStatus
from researchflow.services.migration_service import MigrationService
from .deps import get_current_user_id, get_uow

router = APIRouter(tags=["migration"])


class RollbackResponse(BaseModel):
    """回滚响应"""
    ok: bool = True


@router.post("/projects/{project_id}/migration", response_model=MigrationResult)
async def migrate_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """迁移旧版记录（重复迁移等价于覆盖）"""
    return await MigrationService(uow).migrate(project_id, user_id)


@router.delete("/projects/{project_id}/migration", response_model=RollbackResponse)
async def rollback_migration(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """回滚迁移（旧版 JSON 内容保持不变）"""
    result = await MigrationService(uow).rollback(project_id, user_id)
    return RollbackResponse(ok=result["ok"])


@router.get("/migration/status", response_model=MigrationStatus)
async def get_migration_status(uow: UnitOfWork = Depends(get_uow)):
    """全局迁移状态"""
    return await MigrationService(uow).get_migration_status()
