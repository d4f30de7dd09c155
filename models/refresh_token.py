"""
RefreshToken model: one row per issued refresh token, so tokens can be rotated and revoked.
Fields:
- id (primary key) - also the `jti` claim of the token
- user_id (String(36)) - FK to users.id
- token_hash - sha256 of the raw token, the raw token is never stored
- token_family - shared by every token descended from one login
- expires_at, revoked_at, replaced_by_token_id, claimed_at
- created_at, ip_address, user_agent - audit metadata
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utcnow


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    token_family = Column(String(36), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    # revoked_at, replaced_by_token_id and claimed_at are set once and never cleared
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_token_id = Column(String(36), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(String(255), nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("ix_refresh_tokens_family_revoked", "token_family", "revoked_at"),
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked_at"),
    )

    @property
    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at

    @property
    def is_usable(self) -> bool:
        return self.revoked_at is None and self.replaced_by_token_id is None and not self.is_expired

    def __repr__(self):
        return f"<RefreshToken id={self.id} family={self.token_family} revoked={self.revoked_at is not None}>"
