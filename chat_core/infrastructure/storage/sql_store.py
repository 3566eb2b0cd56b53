"""基于 SQLAlchemy 的关系型轮次存储。

表结构只在首次连接时通过 create_all 建立；
正式环境的表迁移由外部工具负责。
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from chat_core.config.settings import settings
from chat_core.domain.conversation import MESSAGE_TYPE_NORMAL, StoredTurn, TurnStore
from chat_core.domain.exceptions import PersistenceError


Base = declarative_base()


class MessageRow(Base):
    """一条持久化的对话轮次。

    content 保存 JSON 序列化后的 segment 数组；
    message_type 区分普通轮次与外部系统定义的其它轮次。
    """

    __tablename__ = "messages"

    id = Column(String(64), primary_key=True)
    chat_id = Column(String(128), index=True, nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(String(32), nullable=False, default=MESSAGE_TYPE_NORMAL)
    model = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if database and database != ":memory:":
        Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


class SqlTurnStore(TurnStore):
    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            url = url or settings.database_url
            _ensure_sqlite_dir(url)
            engine = create_engine(url)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        Base.metadata.create_all(engine)

    def find_many(self, chat_id: str) -> List[StoredTurn]:
        stmt = (
            select(MessageRow)
            .where(MessageRow.chat_id == chat_id)
            .order_by(MessageRow.created_at.asc())
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e))
        return [self._to_turn(r) for r in rows]

    def create_many(self, turns: Sequence[StoredTurn]) -> int:
        rows = [
            MessageRow(
                id=t.id,
                chat_id=t.chat_id,
                role=t.role,
                content=t.content,
                message_type=t.message_type,
                model=t.model,
                created_at=t.created_at,
            )
            for t in turns
        ]
        try:
            with self._session_factory() as session, session.begin():
                session.add_all(rows)
        except SQLAlchemyError as e:
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))
        return len(rows)

    @staticmethod
    def _to_turn(row: MessageRow) -> StoredTurn:
        created_at: datetime = row.created_at
        if created_at.tzinfo is None:
            # SQLite 不保存时区
            created_at = created_at.replace(tzinfo=timezone.utc)
        return StoredTurn(
            id=row.id,
            chat_id=row.chat_id,
            role=row.role,
            content=row.content,
            message_type=row.message_type,
            created_at=created_at,
            model=row.model,
        )
