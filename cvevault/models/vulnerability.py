"""ORM model for persisted vulnerability records."""

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text, func

from cvevault.models.base import Base


class Vulnerability(Base):
    """
    One upstream vulnerability (e.g. one CVE), keyed by its upstream identifier.

    external_id is the natural key for upserts; id is assigned on first insert
    and kept when the same external_id is written again.
    """

    __tablename__ = "vulnerabilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    severity = Column(String(16), nullable=False, index=True)
    score = Column(Float, nullable=False, default=0.0)
    published_at = Column(String(64), nullable=False, default="", index=True)
    modified_at = Column(String(64), nullable=False, default="")
    raw = Column(JSON, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
