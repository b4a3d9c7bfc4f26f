from models.base_model import Base, BaseModel
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, CheckConstraint
from sqlalchemy.orm import relationship


class User(BaseModel, Base):
    """Login account. Lockout fields are owned by services.lockout."""
    __tablename__ = "users"
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    f_name = Column(String(255), nullable=True)
    l_name = Column(String(255), nullable=True)
    phone_number = Column(String(32), nullable=True)
    password_hash = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=False, default=lambda: ["VIEWER"])
    enabled = Column(Boolean, nullable=False, default=True)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("failed_login_attempts >= 0", name="ck_users_failed_attempts_nonnegative"),
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def __repr__(self):
        return f"<User username={self.username}>"
