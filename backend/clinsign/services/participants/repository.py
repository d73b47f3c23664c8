"""
Participant repository with PHI access auditing.

Every successful read, list, create and update of participant data
appends an audit entry attributing the access to the acting user.
Failed lookups are not audited.
"""

from __future__ import annotations

import math

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinsign.core.errors import ErrorCode, NotFoundError
from clinsign.db.models.audit import AccessType
from clinsign.db.models.participant import Participant, ParticipantStatus
from clinsign.schemas.audit import AccessContext
from clinsign.schemas.participant import (
    ParticipantCreate,
    ParticipantOut,
    ParticipantPage,
    ParticipantUpdate,
)
from clinsign.services.audit.recorder import AuditRecorder

_log = structlog.get_logger(__name__)

RESOURCE_TYPE = "participant"


class ParticipantRepository:
    def __init__(self, db: AsyncSession, audit: AuditRecorder) -> None:
        self._db = db
        self._audit = audit

    async def create(self, data: ParticipantCreate, actor: AccessContext) -> ParticipantOut:
        participant = Participant(
            **data.model_dump(),
            created_by=actor.user_id,
            updated_by=actor.user_id,
        )
        self._db.add(participant)
        await self._db.flush()

        await self._log_access(participant.id, actor, AccessType.CREATE)
        _log.info(
            "participant_created",
            participant_id=participant.id,
            study_id=participant.study_id,
            created_by=actor.user_id,
        )
        return ParticipantOut.model_validate(participant)

    async def get_by_id(
        self, participant_id: str, actor: AccessContext, log_access: bool = True
    ) -> ParticipantOut:
        participant = await self._load(participant_id)
        if log_access:
            await self._log_access(participant.id, actor, AccessType.READ)
        return ParticipantOut.model_validate(participant)

    async def get_by_external_id(
        self, study_id: str, external_id: str, actor: AccessContext
    ) -> ParticipantOut:
        result = await self._db.execute(
            select(Participant).where(
                Participant.study_id == study_id,
                Participant.external_id == external_id,
                Participant.deleted_at.is_(None),
            )
        )
        participant = result.scalar_one_or_none()
        if participant is None:
            raise NotFoundError("Participant", external_id, code=ErrorCode.PARTICIPANT_NOT_FOUND)

        await self._log_access(participant.id, actor, AccessType.READ)
        return ParticipantOut.model_validate(participant)

    async def list_participants(
        self,
        actor: AccessContext,
        study_id: str | None = None,
        status: ParticipantStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ParticipantPage:
        """Paginated listing; each returned participant gets its own LIST entry."""
        query = select(Participant).where(Participant.deleted_at.is_(None))
        if study_id:
            query = query.where(Participant.study_id == study_id)
        if status:
            query = query.where(Participant.status == status)

        count = await self._db.execute(select(func.count()).select_from(query.subquery()))
        total = count.scalar_one()
        result = await self._db.execute(
            query.order_by(Participant.created_at.desc(), Participant.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        participants = list(result.scalars().all())

        for participant in participants:
            await self._log_access(participant.id, actor, AccessType.LIST)

        return ParticipantPage(
            items=[ParticipantOut.model_validate(p) for p in participants],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    async def update(
        self, participant_id: str, data: ParticipantUpdate, actor: AccessContext
    ) -> ParticipantOut:
        participant = await self._load(participant_id)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(participant, field, value)
        participant.updated_by = actor.user_id
        await self._db.flush()

        await self._log_access(
            participant.id, actor, AccessType.UPDATE, fields_accessed=sorted(changes)
        )
        _log.info(
            "participant_updated",
            participant_id=participant.id,
            changes=sorted(changes),
            updated_by=actor.user_id,
        )
        return ParticipantOut.model_validate(participant)

    async def _load(self, participant_id: str) -> Participant:
        participant = await self._db.get(Participant, participant_id)
        if participant is None or participant.is_deleted:
            raise NotFoundError(
                "Participant", participant_id, code=ErrorCode.PARTICIPANT_NOT_FOUND
            )
        return participant

    async def _log_access(
        self,
        participant_id: str,
        actor: AccessContext,
        access_type: AccessType,
        fields_accessed: list[str] | None = None,
    ) -> None:
        await self._audit.record(
            resource_id=participant_id,
            user_id=actor.user_id,
            access_type=access_type,
            resource_type=RESOURCE_TYPE,
            fields_accessed=fields_accessed,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            correlation_id=actor.correlation_id,
        )
