from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Boolean, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from pipewatch.src.db.database import Base

class Pipeline(Base):
    __tablename__ = "pipelines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    source_kind = Column(String(50), nullable=False, default="github")
    repository_url = Column(String(500))
    owner = Column(String(255))
    repo = Column(String(255))
    workflow_id = Column(String(100))
    workflow_name = Column(String(255))
    webhook_id = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    executions = relationship("Execution", back_populates="pipeline", passive_deletes=True)

    @property
    def full_name(self):
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None

class Execution(Base):
    __tablename__ = "executions"
    __table_args__ = (
        UniqueConstraint("pipeline_id", "external_id", name="uq_executions_pipeline_external_id"),
        UniqueConstraint("pipeline_id", "build_number", name="uq_executions_pipeline_build_number"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pipeline_id = Column(Uuid(as_uuid=True), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False)
    external_id = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False, default="pending")
    build_number = Column(Integer, nullable=False)
    run_attempt = Column(Integer, nullable=False, default=1)
    duration_seconds = Column(Integer)
    commit_hash = Column(String(40))
    commit_message = Column(Text)
    branch = Column(String(255))
    log_reference = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    pipeline = relationship("Pipeline", back_populates="executions")

class NotificationSubscription(Base):
    __tablename__ = "notification_subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # NULL pipeline_id subscribes to every pipeline
    pipeline_id = Column(Uuid(as_uuid=True), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=True)
    email_address = Column(String(320), nullable=False)
    notify_on_started = Column(Boolean, nullable=False, default=True)
    notify_on_success = Column(Boolean, nullable=False, default=True)
    notify_on_failure = Column(Boolean, nullable=False, default=True)
    notify_on_stopped = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
