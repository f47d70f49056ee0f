"""Async SOA Repository Implementation.

Implements ISOARepository using SQLAlchemy async sessions.

All row-to-domain translation happens in _row_to_record; nothing above this
layer ever sees a raw row. Status changes are only possible through the
conditional UPDATE in compare_and_set_status.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import ISOARepository
from domain.soa import (
    EXPIRABLE_STATUSES,
    DeliveryMethod,
    SignerType,
    SOAProduct,
    SOARecord,
    SOAStatus,
)
from database.models import SOARecordModel

logger = logging.getLogger(__name__)

_table = SOARecordModel.__table__

# Columns written once and never through update_fields
PROTECTED_FIELDS = frozenset({
    "id",
    "agent_id",
    "client_id",
    "status",
    "secure_token",
    "token_expires_at",
    "client_typed_signature",
    "client_signed_at",
    "created_at",
})


def _as_utc(value: Any) -> Optional[datetime]:
    """Normalize driver output (naive SQLite datetimes, ISO strings) to aware UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _products(value: Any) -> List[SOAProduct]:
    if isinstance(value, str):
        value = json.loads(value) if value else []
    if not isinstance(value, list):
        return []
    known = {p.value for p in SOAProduct}
    return [SOAProduct(v) for v in value if isinstance(v, str) and v in known]


def _row_to_record(row) -> SOARecord:
    """Convert a scope_of_appointments row to an SOARecord."""
    m = row._mapping
    return SOARecord(
        id=m["id"],
        agent_id=m["agent_id"],
        client_id=m["client_id"],
        status=SOAStatus(m["status"]),
        delivery_method=DeliveryMethod(m["delivery_method"] or DeliveryMethod.EMAIL.value),
        secure_token=m["secure_token"],
        token_expires_at=_as_utc(m["token_expires_at"]),
        language=m["language"] or "en",
        products_preselected=_products(m["products_preselected"]),
        products_selected=_products(m["products_selected"]),
        signer_type=SignerType(m["signer_type"]) if m["signer_type"] else None,
        client_typed_signature=m["client_typed_signature"],
        client_signed_at=_as_utc(m["client_signed_at"]),
        client_ip_address=m["client_ip_address"],
        client_user_agent=m["client_user_agent"],
        rep_name=m["rep_name"],
        rep_relationship=m["rep_relationship"],
        agent_name=m["agent_name"] or "",
        agent_phone=m["agent_phone"],
        agent_npn=m["agent_npn"],
        beneficiary_name=m["beneficiary_name"] or "",
        beneficiary_phone=m["beneficiary_phone"],
        beneficiary_address=m["beneficiary_address"],
        agent_typed_signature=m["agent_typed_signature"],
        agent_signed_at=_as_utc(m["agent_signed_at"]),
        initial_contact_method=m["initial_contact_method"],
        appointment_date=_as_date(m["appointment_date"]),
        signed_artifact_path=m["signed_artifact_path"],
        created_at=_as_utc(m["created_at"]),
        updated_at=_as_utc(m["updated_at"]),
    )


def _to_column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert domain values (enums, product lists) to column values."""
    values = {}
    for key, value in fields.items():
        if key in ("products_preselected", "products_selected"):
            value = [p.value if isinstance(p, SOAProduct) else p for p in (value or [])]
        elif hasattr(value, "value") and isinstance(value, (SOAStatus, SignerType, DeliveryMethod)):
            value = value.value
        values[key] = value
    return values


class SOARepository(ISOARepository):
    """
    Async implementation of ISOARepository.

    Uses SQLAlchemy async sessions with the scope_of_appointments table.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with a session.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    async def get(self, soa_id: str) -> Optional[SOARecord]:
        result = await self._session.execute(select(_table).where(_table.c.id == soa_id))
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def get_for_agent(self, agent_id: str, soa_id: str) -> Optional[SOARecord]:
        result = await self._session.execute(
            select(_table).where(_table.c.id == soa_id, _table.c.agent_id == agent_id)
        )
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def get_by_token(self, token: str) -> Optional[SOARecord]:
        result = await self._session.execute(
            select(_table).where(_table.c.secure_token == token)
        )
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def list_for_client(self, agent_id: str, client_id: str) -> List[SOARecord]:
        result = await self._session.execute(
            select(_table)
            .where(_table.c.agent_id == agent_id, _table.c.client_id == client_id)
            .order_by(_table.c.created_at.desc())
        )
        return [_row_to_record(row) for row in result.fetchall()]

    async def list_expirable(self, now: datetime, limit: int = 500) -> List[SOARecord]:
        result = await self._session.execute(
            select(_table)
            .where(
                _table.c.status.in_([s.value for s in EXPIRABLE_STATUSES]),
                _table.c.token_expires_at < now,
                _table.c.client_signed_at.is_(None),
            )
            .order_by(_table.c.token_expires_at)
            .limit(limit)
        )
        return [_row_to_record(row) for row in result.fetchall()]

    async def insert(self, record: SOARecord) -> None:
        values = _to_column_values(record.model_dump())
        await self._session.execute(insert(_table).values(**values))
        logger.debug(f"Inserted SOA record: {record.id}")

    async def get_status(self, soa_id: str) -> Optional[SOAStatus]:
        result = await self._session.execute(
            select(_table.c.status).where(_table.c.id == soa_id)
        )
        row = result.fetchone()
        return SOAStatus(row[0]) if row is not None else None

    async def compare_and_set_status(
        self,
        soa_id: str,
        expected: Iterable[SOAStatus],
        target: SOAStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        values = _to_column_values(fields or {})
        values["status"] = target.value
        values.setdefault("updated_at", datetime.now(timezone.utc))

        result = await self._session.execute(
            update(_table)
            .where(
                _table.c.id == soa_id,
                _table.c.status.in_([s.value for s in expected]),
            )
            .values(**values)
        )
        return result.rowcount == 1

    async def update_fields(self, soa_id: str, fields: Dict[str, Any]) -> bool:
        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise ValueError(f"Fields cannot be updated directly: {sorted(protected)}")

        values = _to_column_values(fields)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        result = await self._session.execute(
            update(_table).where(_table.c.id == soa_id).values(**values)
        )
        return result.rowcount == 1
