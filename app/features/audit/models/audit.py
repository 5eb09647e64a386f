import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.platform.db.base import BaseModel


class AuditStatus(str, enum.Enum):
    completed = "completed"
    failed = "failed"


class AuditCache(BaseModel):
    __tablename__ = "audit_cache"
    __table_args__ = (UniqueConstraint("domain", "mode", name="uq_audit_cache_domain_mode"),)

    domain = Column(String(253), nullable=False, index=True)
    mode = Column(String(16), nullable=False)
    results = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)


class Audit(BaseModel):
    __tablename__ = "audits"

    domain = Column(String(253), nullable=False, index=True)
    email = Column(String(254), nullable=True, index=True)
    mode = Column(String(16), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    request_id = Column(String(64), nullable=True)

    lighthouse_results = Column(JSON, nullable=True)
    seo_basic_results = Column(JSON, nullable=True)
    security_results = Column(JSON, nullable=True)
    rgpd_results = Column(JSON, nullable=True)
    cookies_results = Column(JSON, nullable=True)
    seo_advanced_results = Column(JSON, nullable=True)

    execution_time = Column(Integer, nullable=False, default=0)
    pdf_generated = Column(Boolean, nullable=False, default=False)
    email_sent = Column(Boolean, nullable=False, default=False)
    email_message_id = Column(String(255), nullable=True)
    status = Column(Enum(AuditStatus, name="audit_status"), nullable=False, default=AuditStatus.completed)
    error_message = Column(Text, nullable=True)


class AuditStatistics(BaseModel):
    __tablename__ = "audit_statistics"

    date = Column(Date, nullable=False, unique=True, index=True)
    total_audits = Column(Integer, nullable=False, default=0)
    fast_audits = Column(Integer, nullable=False, default=0)
    complete_audits = Column(Integer, nullable=False, default=0)
    emails_sent = Column(Integer, nullable=False, default=0)
    emails_failed = Column(Integer, nullable=False, default=0)
    avg_execution_time = Column(Float, nullable=False, default=0.0)


class PopularDomain(BaseModel):
    __tablename__ = "popular_domains"

    domain = Column(String(253), nullable=False, unique=True, index=True)
    audit_count = Column(Integer, nullable=False, default=0)
    last_audit_at = Column(DateTime(timezone=True), nullable=True)
    avg_performance = Column(Float, nullable=False, default=0.0)
    avg_seo = Column(Float, nullable=False, default=0.0)
    avg_accessibility = Column(Float, nullable=False, default=0.0)
    avg_best_practices = Column(Float, nullable=False, default=0.0)
