import uuid

from sqlalchemy import JSON, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.sql.sqltypes import TIMESTAMP

from .database import Base


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, nullable=False)
    name = Column(String, nullable=False, server_default="")
    userpic_url = Column(String, nullable=True)
    # Lists of {"value": ..., "status": ...} mappings.
    emails = Column(JSON, nullable=False, default=list)
    phones = Column(JSON, nullable=False, default=list)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    binding = relationship(
        "IdentityBinding",
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )


class IdentityBinding(Base):
    __tablename__ = "identity_bindings"
    __table_args__ = (
        UniqueConstraint("remote_id", name="uq_identity_bindings_remote_id"),
        UniqueConstraint("account_id", name="uq_identity_bindings_account_id"),
    )
    id = Column(Integer, primary_key=True, nullable=False)
    remote_id = Column(String, nullable=False, index=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    token_params = Column(JSON, nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    account = relationship("Account", back_populates="binding")


class BindingEvent(Base):
    __tablename__ = "binding_events"
    id = Column(Integer, primary_key=True, nullable=False)
    event_key = Column(
        String, nullable=False, unique=True, index=True, default=lambda: str(uuid.uuid4())
    )
    action = Column(String, nullable=False, index=True)
    remote_id = Column(String, nullable=False, index=True)
    account_id = Column(Integer, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
