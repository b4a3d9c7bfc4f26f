from sqlalchemy import Column, String, DateTime, Index

from models.base_model import BaseModel, Base

# Audit action constants
ACTION_LOGIN = "LOGIN"
ACTION_LOGOUT = "LOGOUT"
ACTION_LOGIN_FAILED = "LOGIN_FAILED"
ACTION_PASSWORD_CHANGED = "PASSWORD_CHANGED"
ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_UNLOCK = "UNLOCK"
ACTION_CLEANUP = "CLEANUP"

# Resource type constants
RESOURCE_USER = "USER"
RESOURCE_REFRESH_TOKEN = "REFRESH_TOKEN"
RESOURCE_AUDIT_LOG = "AUDIT_LOG"

# Status constants
STATUS_SUCCESS = "SUCCESS"
STATUS_FAILURE = "FAILURE"
STATUS_WARNING = "WARNING"


class AuditLog(BaseModel, Base):
    """Append-only security event. Rows are only ever inserted or swept by age."""
    __tablename__ = "audit_logs"

    username = Column(String(50), nullable=False)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)
    details = Column(String(2000), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_SUCCESS)
    error_message = Column(String(1000), nullable=True)
    timestamp = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_audit_username", "username"),
        Index("ix_audit_action", "action"),
        Index("ix_audit_resource", "resource_type", "resource_id"),
        Index("ix_audit_timestamp", "timestamp"),
        Index("ix_audit_ip", "ip_address"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.username} at {self.timestamp}>"
