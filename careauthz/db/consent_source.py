from __future__ import annotations

from datetime import timedelta
import logging
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from careauthz.models.consent import ClientConsent
from careauthz.policy.consent import ConsentRecord, ConsentScope

logger = logging.getLogger(__name__)


class SqlConsentRecordSource:
    """
    Consent records read from the ``client_consents`` table.

    Looked up by client (the object id); newest grant first. A session is
    opened per lookup so nothing is cached between decisions.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def lookup(self, user_id: str, object_id: str) -> list[ConsentRecord]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(ClientConsent)
                .where(ClientConsent.client_id == object_id)
                .order_by(ClientConsent.granted_at.desc(), ClientConsent.id)
            ).all()
            records = [_to_record(row) for row in rows]

        logger.debug("Consent lookup object_id=%s records=%d", object_id, len(records))
        return records


def _to_record(row: ClientConsent) -> ConsentRecord:
    # A stored zero means "use the configured grace period".
    grace = timedelta(minutes=row.grace_period_minutes) if row.grace_period_minutes else None
    return ConsentRecord(
        id=row.id,
        active=row.revoked_at is None,
        expires_at=row.expires_at,
        allowed_purposes=frozenset(row.allowed_purposes or ()),
        scope_type=ConsentScope(row.scope_type),
        scope_id=row.scope_id,
        grace_window=grace,
    )
