"""
迁移状态检查脚本

统计旧版记录与规范化表的数据量，并检查数据完整性（孤儿记录、缺失元数据）。

运行方式：
    python scripts/check_migration_status.py [--json]
"""

import asyncio
import argparse
import json

from researchflow.config.logging_config import setup_logging
from researchflow.db.session import engine
from researchflow.db.unit_of_work import transaction
from researchflow.models.domain import MigrationStatus
from researchflow.services.migration_service import MigrationService


def print_report(status: MigrationStatus) -> None:
    """打印可读报告"""
    print("Migration Status Report")
    print("======================\n")

    print(f"Records in old format (JSON blob): {status.old_records}")
    print("Records in new format:")
    print(f"  Metadata: {status.new_metadata}")
    print(f"  Ideas: {status.new_ideas}")
    print(f"  Content: {status.new_content}")
    print(f"  Chat: {status.new_chat}\n")

    print("Data Integrity Checks:")
    print(f"  Orphaned ideas: {status.orphaned_ideas}")
    print(f"  Orphaned content: {status.orphaned_content}")
    print(f"  Orphaned chat: {status.orphaned_chat}")
    print(f"  Missing metadata: {status.missing_metadata}")

    print("\nMigration Progress:")
    print(
        f"  Migrated: {status.new_metadata} / {status.old_records} "
        f"({status.migration_percentage}%)"
    )

    print(f"\nMigration Status: {'✓ COMPLETE' if status.is_complete else '⚠ INCOMPLETE'}")


async def main(as_json: bool):
    setup_logging()

    try:
        async with transaction() as uow:
            status = await MigrationService(uow).get_migration_status()
    finally:
        await engine.dispose()

    print_report(status)

    if as_json:
        print("\n" + json.dumps(status.model_dump(), indent=4))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="检查旧版数据迁移状态")
    parser.add_argument(
        "--json",
        action="store_true",
        help="额外输出 JSON 格式的统计结果",
    )

    args = parser.parse_args()

    asyncio.run(main(as_json=args.json))
