from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ServerRecord(Base):
    __tablename__ = "mcp_servers"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    config = Column(JSON, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="disconnected")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    tools = relationship(
        "ToolRecord",
        back_populates="server",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ToolRecord.name",
    )

    def __repr__(self):
        return f"<ServerRecord(id={self.id}, name='{self.name}', status='{self.status}')>"


class ToolRecord(Base):
    __tablename__ = "mcp_tools"

    # f"{server_id}_{name}"
    id = Column(String, primary_key=True)
    server_id = Column(String, ForeignKey("mcp_servers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    input_schema = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    server = relationship("ServerRecord", back_populates="tools")

    __table_args__ = (
        Index("idx_tools_server_id", "server_id"),
        Index("idx_tools_name", "name"),
    )

    def __repr__(self):
        return f"<ToolRecord(id={self.id}, server_id='{self.server_id}')>"
