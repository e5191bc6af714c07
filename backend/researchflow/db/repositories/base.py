"""
基础 Repository

提供泛型 CRUD 操作，所有具体 Repository 继承此类。

设计原则：
- Repository 只负责数据访问，不包含业务逻辑
- 使用泛型支持类型安全
- 异步操作
- 使用 SQLAlchemy 2.0 新语法
"""
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlmodel import SQLModel
import structlog

logger = structlog.get_logger(__name__)

# 泛型类型变量（必须是 SQLModel 子类）
T = TypeVar('T', bound=SQLModel)


class BaseRepository(Generic[T]):
    """
    基础仓储类，提供通用 CRUD 操作

    过滤条件约定（list_by / count / exists / delete_where）：
    - 标量值：column == value
    - 列表值：column IN (...)
    - None：column IS NULL

    使用示例：
    ```python
    class IdeaRepository(BaseRepository[Idea]):
        def __init__(self, session: AsyncSession):
            super().__init__(session, Idea)

        async def list_for_scope(self, project_id: int, user_id: int) -> List[Idea]:
            return await self.list_by(project_id=project_id, user_id=user_id)
    ```
    """

    def __init__(self, session: AsyncSession, model: Type[T]):
        """
        初始化仓储

        Args:
            session: 异步数据库会话
            model: SQLModel 模型类
        """
        self.session = session
        self.model = model
        self._model_name = model.__name__

    # ============================================================
    # 基础查询方法
    # ============================================================

    async def get_by_id(self, id_value: Any) -> Optional[T]:
        """
        根据主键 ID 查询单条记录

        Args:
            id_value: 主键值

        Returns:
            实体对象，如果不存在则返回 None
        """
        result = await self.session.execute(
            select(self.model).where(self._get_id_column() == id_value)
        )
        entity = result.scalar_one_or_none()

        logger.debug(
            "entity_found" if entity else "entity_not_found",
            model=self._model_name,
            id=id_value,
        )

        return entity

    async def get_one_by(self, **filters) -> Optional[T]:
        """
        按过滤条件查询单条记录（自然键查找）

        Args:
            **filters: 过滤条件

        Returns:
            第一条匹配的实体，不存在则返回 None
        """
        query = self._apply_filters(select(self.model), filters).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_by(
        self,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        **filters,
    ) -> List[T]:
        """
        按过滤条件查询记录列表

        Args:
            order_by: 排序字段，可以是单个表达式或表达式元组
            limit: 返回数量限制（None 表示不限制）
            offset: 分页偏移
            **filters: 过滤条件

        Returns:
            实体对象列表
        """
        query = self._apply_filters(select(self.model), filters)

        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                query = query.order_by(*order_by)
            else:
                query = query.order_by(order_by)

        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)

        result = await self.session.execute(query)
        entities = list(result.scalars().all())

        logger.debug(
            "entities_listed",
            model=self._model_name,
            count=len(entities),
            filters=filters,
        )

        return entities

    async def count(self, **filters) -> int:
        """
        统计记录数量

        Args:
            **filters: 过滤条件（键值对）

        Returns:
            记录数量
        """
        query = select(func.count()).select_from(self.model)

        if filters:
            query = self._apply_filters(query, filters)

        result = await self.session.execute(query)
        return result.scalar_one()

    async def exists(self, **filters) -> bool:
        """
        检查记录是否存在

        Args:
            **filters: 过滤条件（键值对）

        Returns:
            True 如果存在，False 如果不存在
        """
        query = select(self._get_id_column()).limit(1)
        query = self._apply_filters(query, filters)

        result = await self.session.execute(query)
        return result.first() is not None

    # ============================================================
    # 创建和更新方法
    # ============================================================

    async def create(self, entity: T, *, flush: bool = True) -> T:
        """
        创建新记录

        Args:
            entity: 实体对象
            flush: 是否立即刷新到数据库（默认 True，以便拿到自增 ID）

        Returns:
            创建后的实体对象（包含自动生成的字段，如 ID）

        注意：
        - 调用者负责在适当的时候 commit 事务
        """
        self.session.add(entity)

        if flush:
            await self.session.flush()
            await self.session.refresh(entity)

        logger.debug(
            "entity_created",
            model=self._model_name,
            id=self._get_entity_id(entity),
            flushed=flush,
        )

        return entity

    async def update_by_id(
        self,
        id_value: Any,
        **fields: Any,
    ) -> bool:
        """
        根据主键 ID 更新记录的指定字段

        Args:
            id_value: 主键值
            **fields: 要更新的字段（键值对）

        Returns:
            True 如果更新成功，False 如果记录不存在
        """
        if not fields:
            logger.warning(
                "update_called_without_fields",
                model=self._model_name,
                id=id_value,
            )
            return False

        result = await self.session.execute(
            update(self.model)
            .where(self._get_id_column() == id_value)
            .values(**fields)
            .execution_options(synchronize_session="fetch")
        )

        updated = result.rowcount > 0

        if updated:
            logger.debug(
                "entity_updated",
                model=self._model_name,
                id=id_value,
                updated_fields=list(fields.keys()),
            )
        else:
            logger.warning(
                "entity_update_failed_not_found",
                model=self._model_name,
                id=id_value,
            )

        return updated

    async def update_where(self, values: Dict[str, Any], **filters) -> int:
        """
        按过滤条件批量更新

        Args:
            values: 要更新的字段
            **filters: 过滤条件

        Returns:
            受影响的行数
        """
        query = self._apply_filters(update(self.model), filters).values(**values)
        result = await self.session.execute(
            query.execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # ============================================================
    # 删除方法
    # ============================================================

    async def delete_by_id(self, id_value: Any) -> bool:
        """
        根据主键 ID 删除记录

        Args:
            id_value: 主键值

        Returns:
            True 如果删除成功，False 如果记录不存在
        """
        result = await self.session.execute(
            delete(self.model)
            .where(self._get_id_column() == id_value)
            .execution_options(synchronize_session="fetch")
        )

        deleted = result.rowcount > 0

        if deleted:
            logger.info(
                "entity_deleted",
                model=self._model_name,
                id=id_value,
            )
        else:
            logger.warning(
                "entity_delete_failed_not_found",
                model=self._model_name,
                id=id_value,
            )

        return deleted

    async def delete_where(self, **filters) -> int:
        """
        按过滤条件批量删除

        Args:
            **filters: 过滤条件（不允许为空，防止误删全表）

        Returns:
            删除的行数
        """
        if not filters:
            raise ValueError(f"delete_where on {self._model_name} requires at least one filter")

        query = self._apply_filters(delete(self.model), filters)
        result = await self.session.execute(
            query.execution_options(synchronize_session="fetch")
        )

        logger.debug(
            "entities_deleted",
            model=self._model_name,
            count=result.rowcount,
            filters=filters,
        )

        return result.rowcount

    # ============================================================
    # 辅助方法
    # ============================================================

    def _get_id_column(self) -> Any:
        """
        获取模型的主键列

        Returns:
            主键列对象
        """
        if hasattr(self.model, 'id'):
            return self.model.id

        primary_keys = list(self.model.__table__.primary_key.columns)
        if primary_keys:
            return primary_keys[0]

        raise ValueError(f"Model {self._model_name} has no primary key defined")

    def _get_entity_id(self, entity: T) -> Any:
        """
        获取实体的主键值

        Args:
            entity: 实体对象

        Returns:
            主键值
        """
        if hasattr(entity, 'id'):
            return entity.id

        primary_keys = list(self.model.__table__.primary_key.columns)
        if primary_keys:
            return getattr(entity, primary_keys[0].name, None)

        return None

    def _apply_filters(self, query: Any, filters: Dict[str, Any]) -> Any:
        """
        应用过滤条件到查询

        Args:
            query: SQLAlchemy 查询对象（select / update / delete）
            filters: 过滤条件字典

        Returns:
            应用过滤后的查询对象
        """
        for field, value in filters.items():
            if not hasattr(self.model, field):
                raise ValueError(f"Model {self._model_name} has no field '{field}'")
            column = getattr(self.model, field)
            if value is None:
                query = query.where(column.is_(None))
            elif isinstance(value, (list, tuple, set)):
                query = query.where(column.in_(list(value)))
            else:
                query = query.where(column == value)

        return query
