"""
Persistence for refresh-token records.

Every mutator is a single conditional UPDATE that only touches rows whose
target column is still NULL, so repeating a call is a no-op. Mutators commit
by default; pass commit=False to group several of them in one transaction.
"""
from __future__ import annotations

import hashlib
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update, delete

from models import storage
from models.base_model import utcnow
from models.refresh_token import RefreshToken

USER_AGENT_MAX = 255


class TokenStore:

    def __init__(self, db=None):
        self.db = db or storage

    @property
    def session(self):
        return self.db.get_session()

    @staticmethod
    def hash(raw_token: str) -> str:
        """sha256 hex digest of the raw token; used for both writes and lookups."""
        return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()

    def create(
        self,
        user_id: str,
        family: str,
        digest: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
        token_id: str | None = None,
        commit: bool = True,
    ) -> RefreshToken:
        record = RefreshToken(
            id=token_id,
            user_id=user_id,
            token_family=family,
            token_hash=digest,
            expires_at=expires_at,
            ip_address=ip,
            user_agent=user_agent[:USER_AGENT_MAX] if user_agent else None,
        )
        self.db.new(record)
        self._finish(commit)
        return record

    def find_by_hash(self, digest: str) -> Optional[RefreshToken]:
        return (
            self.session.query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.token_hash == digest)
            .first()
        )

    def get(self, token_id: str) -> Optional[RefreshToken]:
        return self.session.get(RefreshToken, token_id, populate_existing=True)

    def try_claim(self, token_id: str, commit: bool = True) -> bool:
        """
        Compare-and-swap on one row: marks it claimed only while it is neither
        revoked, replaced nor already claimed. The database serializes
        concurrent updates of the same row, so at most one caller gets True.
        """
        result = self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.id == token_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.replaced_by_token_id.is_(None),
                RefreshToken.claimed_at.is_(None),
            )
            .values(claimed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._finish(commit)
        return result.rowcount == 1

    def set_replaced_by(self, token_id: str, new_token_id: str, commit: bool = True) -> int:
        result = self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.replaced_by_token_id.is_(None))
            .values(replaced_by_token_id=new_token_id)
            .execution_options(synchronize_session=False)
        )
        self._finish(commit)
        return result.rowcount

    def revoke(self, token_id: str, commit: bool = True) -> int:
        return self._revoke_where(RefreshToken.id == token_id, commit=commit)

    def revoke_family(self, family: str, commit: bool = True) -> int:
        return self._revoke_where(RefreshToken.token_family == family, commit=commit)

    def revoke_user(self, user_id: str, commit: bool = True) -> int:
        return self._revoke_where(RefreshToken.user_id == user_id, commit=commit)

    def active_sessions(self, user_id: str) -> List[RefreshToken]:
        now = utcnow()
        return (
            self.session.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.replaced_by_token_id.is_(None),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at.desc())
            .all()
        )

    def purge_expired(self, now: datetime | None = None) -> int:
        """Physically delete expired rows. Only the retention command calls this."""
        result = self.session.execute(
            delete(RefreshToken)
            .where(RefreshToken.expires_at <= (now or utcnow()))
            .execution_options(synchronize_session=False)
        )
        self.commit()
        return result.rowcount

    def commit(self):
        self.db.save()

    def rollback(self):
        self.db.rollback()

    def _revoke_where(self, criterion, commit: bool = True) -> int:
        result = self.session.execute(
            update(RefreshToken)
            .where(criterion, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._finish(commit)
        return result.rowcount

    def _finish(self, commit: bool):
        if commit:
            self.db.save()
        else:
            self.db.flush()
