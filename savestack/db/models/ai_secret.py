"""AI secret database model.

One row per (user, provider). The table is the remote secret store that the
vault service reads and upserts into.
"""

from datetime import datetime
import uuid

from sqlalchemy import (
    DateTime,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from savestack.database import Base


class AISecret(Base):
    """A provider credential owned by a single user.

    The (user_id, provider) pair is unique, so storing a second credential
    for the same pair replaces the first.
    """

    __tablename__ = "ai_secrets"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_ai_secrets_user_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    # Subject of the identity provider's session; not a local foreign key
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    # Column name matches the provisioned schema; values are stored as given
    encrypted_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AISecret user={self.user_id} provider={self.provider}>"
