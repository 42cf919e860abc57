import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional
from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.future import select
from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import WAITING_STATES, JobKind, JobRecord, RecordState
from task_jobs.domain.result import JobResult
from task_jobs.storages.protocol import Storage

Base = declarative_base()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on DateTime(timezone=True) columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobRecordModel(Base):
    __tablename__ = 'job_records'

    tracking_id = Column(String, primary_key=True)
    job_id = Column(String, nullable=False, index=True)
    job_name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    state = Column(String, nullable=False)
    context = Column(JSON, nullable=False)
    scheduled_for = Column(DateTime(timezone=True))
    attempts = Column(Integer, nullable=False, default=0)
    result = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

class SqlAlchemyStorage(Storage):
    def __init__(self, db_url: str, **engine_kwargs: Any):
        self.engine = create_async_engine(db_url, **engine_kwargs)
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._tables_ready = False
        self._tables_lock = asyncio.Lock()

    async def create_tables(self):
        async with self._tables_lock:
            if self._tables_ready:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._tables_ready = True

    async def dispose(self):
        await self.engine.dispose()

    async def create_record(self, record: JobRecord) -> str:
        await self.create_tables()
        async with self.async_session() as session:
            db_record = JobRecordModel(tracking_id=record.tracking_id)
            self._apply(db_record, record)
            session.add(db_record)
            await session.commit()
            return record.tracking_id

    async def get_record(self, tracking_id: str) -> Optional[JobRecord]:
        await self.create_tables()
        async with self.async_session() as session:
            result = await session.execute(select(JobRecordModel).filter_by(tracking_id=tracking_id))
            db_record = result.scalar_one_or_none()
            if db_record:
                return self._db_to_record(db_record)
            return None

    async def update_record(self, record: JobRecord) -> bool:
        await self.create_tables()
        async with self.async_session() as session:
            result = await session.execute(select(JobRecordModel).filter_by(tracking_id=record.tracking_id))
            db_record = result.scalar_one_or_none()
            if db_record:
                self._apply(db_record, record)
                await session.commit()
                return True
            return False

    async def list_records(self, job_id: Optional[str] = None, limit: int = 100) -> List[JobRecord]:
        await self.create_tables()
        async with self.async_session() as session:
            query = select(JobRecordModel)
            if job_id is not None:
                query = query.filter_by(job_id=job_id)
            result = await session.execute(query.order_by(JobRecordModel.created_at.desc()).limit(limit))
            return [self._db_to_record(db_record) for db_record in result.scalars()]

    async def list_waiting(self) -> List[JobRecord]:
        await self.create_tables()
        async with self.async_session() as session:
            query = select(JobRecordModel).where(JobRecordModel.state.in_([s.value for s in WAITING_STATES]))
            result = await session.execute(query.order_by(JobRecordModel.created_at))
            return [self._db_to_record(db_record) for db_record in result.scalars()]

    def _apply(self, db_record: JobRecordModel, record: JobRecord) -> None:
        db_record.job_id = record.job_id
        db_record.job_name = record.job_name
        db_record.kind = record.kind.value
        db_record.state = record.state.value
        db_record.context = record.context.model_dump(mode="json")
        db_record.scheduled_for = record.scheduled_for
        db_record.attempts = record.attempts
        db_record.result = record.result.model_dump(mode="json") if record.result else None
        db_record.created_at = record.created_at
        db_record.updated_at = record.updated_at

    def _db_to_record(self, db_record: JobRecordModel) -> JobRecord:
        return JobRecord(
            tracking_id=db_record.tracking_id,
            job_id=db_record.job_id,
            job_name=db_record.job_name,
            kind=JobKind(db_record.kind),
            state=RecordState(db_record.state),
            context=JobExecutionContext.model_validate(db_record.context),
            scheduled_for=_as_utc(db_record.scheduled_for),
            attempts=db_record.attempts,
            result=JobResult.model_validate(db_record.result) if db_record.result else None,
            created_at=_as_utc(db_record.created_at),
            updated_at=_as_utc(db_record.updated_at)
        )


class InMemoryStorage(SqlAlchemyStorage):
    def __init__(self):
        super().__init__(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
