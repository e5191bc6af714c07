"""
旧版数据批量迁移脚本

把尚未迁移的旧版单 JSON 记录逐条迁移到规范化表。
每条记录使用独立事务，单条失败不影响其他记录。

运行方式：
    python scripts/migrate_data.py [--dry-run] [--batch-size N] [--user-id ID] [--activity-id ID]

参数：
    --dry-run: 仅预览要迁移的记录，不修改数据库
    --batch-size: 每批读取的记录数（默认 100）
    --user-id: 只迁移指定学习者
    --activity-id: 只迁移指定写作活动
"""

import asyncio
import argparse
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
import structlog

from researchflow.config.logging_config import setup_logging
from researchflow.core.exceptions import ProjectStoreError
from researchflow.db.session import engine
from researchflow.db.unit_of_work import UnitOfWork, transaction
from researchflow.services.migration_service import MigrationService

logger = structlog.get_logger()


async def migrate_all(
    batch_size: int = 100,
    user_id: Optional[int] = None,
    activity_id: Optional[int] = None,
    dry_run: bool = False,
) -> dict:
    """
    批量迁移

    Returns:
        {"processed": ..., "succeeded": ..., "failed": ..., "errors": [...]}
    """
    succeeded = 0
    errors: List[str] = []
    offset = 0

    while True:
        async with transaction() as uow:
            # 已迁移的记录会从 pending 列表中消失，所以非预览模式下不需要推进 offset
            batch = await uow.legacy.list_pending(
                project_id=activity_id,
                user_id=user_id,
                limit=batch_size,
                offset=offset,
            )
            scopes = [(r.project_id, r.user_id) for r in batch]

        if not scopes:
            break

        print(f"Processing batch of {len(scopes)} records...")

        failed_in_batch = 0
        for project_id, scope_user_id in scopes:
            if dry_run:
                print(f"Would migrate: User {scope_user_id}, Activity {project_id}")
                succeeded += 1
                continue

            try:
                async with UnitOfWork() as uow:
                    result = await MigrationService(uow).migrate(project_id, scope_user_id)
            except (ProjectStoreError, SQLAlchemyError) as e:
                failed_in_batch += 1
                message = e.message if isinstance(e, ProjectStoreError) else str(e)
                errors.append(f"User {scope_user_id}, Activity {project_id}: {message}")
                print(f"✗ Failed: User {scope_user_id}, Activity {project_id}")
                print(f"  Error: {message}")
                continue

            succeeded += 1
            print(f"✓ Migrated: User {scope_user_id}, Activity {project_id}")
            print(f"  - Ideas: {result.ideas_migrated}")
            print(f"  - Chat messages: {result.chat_messages_migrated}")
            print(f"  - Content records: {result.content_records_migrated}")

        # 预览模式不修改数据；失败的记录仍是 pending，需要跳过它们
        offset += len(scopes) if dry_run else failed_in_batch

        print(f"Batch complete. Success: {succeeded}, Errors: {len(errors)}\n")

    logger.info(
        "legacy_batch_migration_finished",
        succeeded=succeeded,
        failed=len(errors),
        dry_run=dry_run,
    )
    return {
        "processed": succeeded + len(errors),
        "succeeded": succeeded,
        "failed": len(errors),
        "errors": errors,
    }


async def main(
    batch_size: int,
    user_id: Optional[int],
    activity_id: Optional[int],
    dry_run: bool,
):
    setup_logging()

    print("Starting data migration...")
    print(f"Dry run: {'YES' if dry_run else 'NO'}")
    print(f"Batch size: {batch_size}\n")

    try:
        summary = await migrate_all(
            batch_size=batch_size,
            user_id=user_id,
            activity_id=activity_id,
            dry_run=dry_run,
        )
    finally:
        await engine.dispose()

    print("Migration complete!")
    print(f"Total records processed: {summary['processed']}")
    print(f"Successful migrations: {summary['succeeded']}")
    print(f"Failed migrations: {summary['failed']}")

    if summary["errors"]:
        print("\nErrors:")
        for error in summary["errors"]:
            print(f"- {error}")

    if dry_run:
        print("\nThis was a dry run. No data was actually migrated.")
        print("Run without --dry-run to perform the actual migration.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="迁移旧版单 JSON 项目数据到规范化表")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="预览模式，不修改数据库",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="每批处理的记录数（默认 100）",
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="只迁移指定学习者（可选）",
    )
    parser.add_argument(
        "--activity-id",
        type=int,
        default=None,
        help="只迁移指定写作活动（可选）",
    )

    args = parser.parse_args()

    asyncio.run(
        main(
            batch_size=args.batch_size,
            user_id=args.user_id,
            activity_id=args.activity_id,
            dry_run=args.dry_run,
        )
    )
