"""
项目 API 端点

- GET    /projects/{project_id}: 读取完整项目
- PUT    /projects/{project_id}: 保存完整项目
- POST   /projects/{project_id}/submit: 提交项目
- DELETE /projects/{project_id}: 删除当前学习者的项目数据
- DELETE /projects/{project_id}/ideas/{idea_id}: 按 ID 删除想法
- POST   /projects/{project_id}/ideas/delete-by-fields: 按字段删除想法
- DELETE /activities/{project_id}: 删除写作活动及其全部数据
"""
from typing import Dict, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
import structlog

from researchflow.core.exceptions import NotFoundError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import IdeaLocation
from researchflow.models.domain import CamelModel, ProjectDocument, SaveProjectResult
from researchflow.services.idea_reconciler import IdeaReconciler
from researchflow.services.project_service import ProjectService
from .deps import get_current_user_id, get_uow

logger = structlog.get_logger()

router = APIRouter(tags=["projects"])


# ============================================================
# 请求 / 响应模型
# ============================================================

class OkResponse(BaseModel):
    """通用成功响应"""
    ok: bool = True


class DeleteProjectResponse(OkResponse):
    """删除项目响应"""
    deleted: Dict[str, int] = Field(default_factory=dict, description="各表删除的行数")


class DeleteIdeaByFieldsRequest(CamelModel):
    """按字段删除想法"""
    content: str = Field(..., min_length=1)
    location: Optional[IdeaLocation] = None
    section_id: Optional[str] = None


# ============================================================
# 项目读写
# ============================================================

@router.get("/projects/{project_id}", response_model=ProjectDocument)
async def load_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """读取完整项目（从未保存过的项目返回默认文档）"""
    return await ProjectService(uow).load_project(project_id, user_id)


@router.put("/projects/{project_id}", response_model=SaveProjectResult)
async def save_project(
    project_id: int,
    document: ProjectDocument,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """
    保存完整项目

    返回 ideaIdMap，前端用它把本地临时 ID 替换为持久化 ID。
    已提交的项目返回 409。
    """
    return await ProjectService(uow).save_project(project_id, user_id, document)


@router.post("/projects/{project_id}/submit", response_model=OkResponse)
async def submit_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """提交项目（提交后不可再保存）"""
    await ProjectService(uow).submit_project(project_id, user_id)
    return OkResponse()


@router.delete("/projects/{project_id}", response_model=DeleteProjectResponse)
async def delete_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """删除当前学习者在该活动下的全部规范化数据"""
    deleted = await ProjectService(uow).delete_project(project_id, user_id)
    return DeleteProjectResponse(deleted=deleted)


# ============================================================
# 想法删除
# ============================================================

@router.delete("/projects/{project_id}/ideas/{idea_id}", response_model=OkResponse)
async def delete_idea(
    project_id: int,
    idea_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """按持久化 ID 删除想法（不存在时 ok=false）"""
    deleted = await IdeaReconciler(uow).delete_idea(project_id, user_id, idea_id)
    return OkResponse(ok=deleted)


@router.post("/projects/{project_id}/ideas/delete-by-fields", response_model=OkResponse)
async def delete_idea_by_fields(
    project_id: int,
    payload: DeleteIdeaByFieldsRequest,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """按内容 / 位置 / 段落删除想法（前端还没有拿到持久化 ID 时使用）"""
    deleted = await IdeaReconciler(uow).delete_idea_by_fields(
        project_id,
        user_id,
        payload.content,
        payload.location,
        payload.section_id,
    )
    return OkResponse(ok=deleted)


# ============================================================
# 活动级联删除
# ============================================================

@router.delete("/activities/{project_id}", response_model=OkResponse)
async def purge_activity(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """删除写作活动及所有学习者的数据"""
    logger.info("activity_purge_requested", project_id=project_id, requested_by=user_id)
    if not await ProjectService(uow).purge_activity(project_id):
        raise NotFoundError(
            f"Activity {project_id} does not exist",
            details={"project_id": project_id},
        )
    return OkResponse()
