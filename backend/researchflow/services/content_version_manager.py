"""
阶段内容与版本管理服务

每次保存都会 upsert 阶段内容行（保留原 created_at），并独立判断是否追加版本快照：
- 该阶段首次保存：总是快照（版本号 1）
- change_summary == "Manual save"：总是快照
- 其他情况：内容发生变化且字数变化 >= AUTO_VERSION_WORD_THRESHOLD 时快照

追加快照后裁剪到 VERSION_RETENTION_LIMIT 个最新版本（按版本号升序删除最旧的）。
"""
from typing import List, Optional
import structlog

from researchflow.config.settings import settings
from researchflow.core.exceptions import ValidationError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import (
    Phase,
    AUTO_SAVE_SUMMARY,
    MANUAL_SAVE_SUMMARY,
    RESTORE_SUMMARY_TEMPLATE,
)
from researchflow.models.database import ProjectContent, ContentVersion, epoch_now

logger = structlog.get_logger(__name__)


def validate_phase(phase: str) -> str:
    """
    校验阶段名称

    Raises:
        ValidationError: 未知阶段
    """
    try:
        return Phase(phase).value
    except ValueError:
        raise ValidationError(
            f"Invalid phase: {phase}",
            details={"phase": phase, "allowed": [p.value for p in Phase]},
        )


class ContentVersionManager:
    """阶段内容与版本管理器"""

    def __init__(
        self,
        uow: UnitOfWork,
        retention_limit: Optional[int] = None,
        word_threshold: Optional[int] = None,
    ):
        self.uow = uow
        self.retention_limit = retention_limit or settings.VERSION_RETENTION_LIMIT
        self.word_threshold = word_threshold if word_threshold is not None else settings.AUTO_VERSION_WORD_THRESHOLD

    # ============================================================
    # 内容保存
    # ============================================================

    async def save_content(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        content: str,
        word_count: int,
        change_summary: Optional[str] = None,
    ) -> Optional[int]:
        """
        保存阶段内容

        Args:
            project_id: 写作活动 ID
            user_id: 学习者 ID
            phase: write / edit
            content: 正文（HTML）
            word_count: 字数
            change_summary: 变更说明（默认 "Auto-saved"）

        Returns:
            新建版本的版本号；未创建版本时返回 None

        Raises:
            ValidationError: 未知阶段
        """
        phase = validate_phase(phase)
        content = content or ""
        word_count = int(word_count or 0)
        change_summary = change_summary or AUTO_SAVE_SUMMARY
        now = epoch_now()

        existing = await self.uow.contents.get_by_phase(project_id, user_id, phase)

        if existing is None:
            await self.uow.contents.create(
                ProjectContent(
                    project_id=project_id,
                    user_id=user_id,
                    phase=phase,
                    content=content,
                    word_count=word_count,
                    created_at=now,
                    modified_at=now,
                )
            )
            should_snapshot = True
            reason = "first_save"
        else:
            word_delta = abs(word_count - (existing.word_count or 0))
            content_changed = content != existing.content

            if change_summary == MANUAL_SAVE_SUMMARY:
                should_snapshot, reason = True, "manual_save"
            elif content_changed and word_delta >= self.word_threshold:
                should_snapshot, reason = True, "word_threshold"
            else:
                should_snapshot, reason = False, "below_threshold"

            await self.uow.contents.update_by_id(
                existing.id,
                content=content,
                word_count=word_count,
                modified_at=now,
            )

        logger.debug(
            "content_saved",
            project_id=project_id,
            user_id=user_id,
            phase=phase,
            word_count=word_count,
            snapshot=should_snapshot,
            reason=reason,
        )

        if not should_snapshot:
            return None

        return await self._append_version(project_id, user_id, phase, content, word_count, change_summary)

    async def get_content(self, project_id: int, user_id: int, phase: str) -> Optional[ProjectContent]:
        """查询阶段当前内容"""
        return await self.uow.contents.get_by_phase(project_id, user_id, validate_phase(phase))

    # ============================================================
    # 版本管理
    # ============================================================

    async def _append_version(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        content: str,
        word_count: int,
        change_summary: str,
    ) -> int:
        """追加版本快照并裁剪超出保留上限的旧版本"""
        version_number = await self.uow.versions.max_version_number(project_id, user_id, phase) + 1

        await self.uow.versions.create(
            ContentVersion(
                project_id=project_id,
                user_id=user_id,
                phase=phase,
                version_number=version_number,
                content=content,
                word_count=word_count,
                change_summary=change_summary,
                modified_by=user_id,
            )
        )

        logger.info(
            "content_version_created",
            project_id=project_id,
            user_id=user_id,
            phase=phase,
            version_number=version_number,
            change_summary=change_summary,
        )

        await self._prune_versions(project_id, user_id, phase)
        return version_number

    async def _prune_versions(self, project_id: int, user_id: int, phase: str) -> int:
        total = await self.uow.versions.count_for_phase(project_id, user_id, phase)
        surplus = total - self.retention_limit
        if surplus <= 0:
            return 0

        oldest = await self.uow.versions.list_oldest(project_id, user_id, phase, limit=surplus)
        for version in oldest:
            await self.uow.versions.delete_by_id(version.id)

        logger.info(
            "content_versions_pruned",
            project_id=project_id,
            user_id=user_id,
            phase=phase,
            pruned=len(oldest),
            retention_limit=self.retention_limit,
        )
        return len(oldest)

    async def get_version_history(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        limit: int = 50,
    ) -> List[ContentVersion]:
        """版本历史（最新在前）"""
        return await self.uow.versions.list_history(project_id, user_id, validate_phase(phase), limit=limit)

    async def get_version(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        version_number: int,
    ) -> Optional[ContentVersion]:
        """查询单个版本"""
        return await self.uow.versions.get_version(project_id, user_id, validate_phase(phase), version_number)

    async def restore_version(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        version_number: int,
    ) -> bool:
        """
        恢复到指定版本

        用快照覆盖当前内容，并追加一个 "Restored from version N" 版本，
        恢复操作本身也会留下记录。

        Returns:
            版本不存在时返回 False
        """
        phase = validate_phase(phase)
        snapshot = await self.uow.versions.get_version(project_id, user_id, phase, version_number)
        if snapshot is None:
            logger.info(
                "content_version_restore_not_found",
                project_id=project_id,
                user_id=user_id,
                phase=phase,
                version_number=version_number,
            )
            return False

        now = epoch_now()
        existing = await self.uow.contents.get_by_phase(project_id, user_id, phase)
        if existing is None:
            await self.uow.contents.create(
                ProjectContent(
                    project_id=project_id,
                    user_id=user_id,
                    phase=phase,
                    content=snapshot.content,
                    word_count=snapshot.word_count,
                    created_at=now,
                    modified_at=now,
                )
            )
        else:
            await self.uow.contents.update_by_id(
                existing.id,
                content=snapshot.content,
                word_count=snapshot.word_count,
                modified_at=now,
            )

        await self._append_version(
            project_id,
            user_id,
            phase,
            snapshot.content,
            snapshot.word_count,
            RESTORE_SUMMARY_TEMPLATE.format(version_number=version_number),
        )

        logger.info(
            "content_version_restored",
            project_id=project_id,
            user_id=user_id,
            phase=phase,
            version_number=version_number,
        )
        return True
