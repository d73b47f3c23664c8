"""Integration tests for participant PHI access auditing."""
from datetime import date

import pytest

from clinsign.core.errors import ErrorCode, NotFoundError
from clinsign.db.models.audit import AccessType
from clinsign.db.models.participant import Participant, ParticipantStatus
from clinsign.schemas.audit import AccessContext
from clinsign.schemas.participant import ParticipantCreate, ParticipantUpdate
from clinsign.services.audit.recorder import AuditRecorder
from clinsign.services.participants.repository import ParticipantRepository


pytestmark = pytest.mark.asyncio

STUDY = "study-0001"
ACTOR = AccessContext(
    user_id="coordinator-1",
    ip_address="192.168.10.5",
    user_agent="ClinPortal/3.2",
    correlation_id="req-42",
)


@pytest.fixture
def audit(db_session) -> AuditRecorder:
    return AuditRecorder(db_session)


@pytest.fixture
def repo(db_session, audit) -> ParticipantRepository:
    return ParticipantRepository(db_session, audit)


def _new(external_id: str = "P-001", **overrides) -> ParticipantCreate:
    fields = {
        "study_id": STUDY,
        "external_id": external_id,
        "first_name": "Jordan",
        "last_name": "Rivera",
        "date_of_birth": date(1980, 4, 12),
    }
    fields.update(overrides)
    return ParticipantCreate(**fields)


# ─── Create / read ────────────────────────────────────────────────────────────

async def test_create_is_audited(repo, audit):
    participant = await repo.create(_new(), ACTOR)
    entries = await audit.entries_for(participant.id, "participant")
    assert [e.access_type for e in entries] == [AccessType.CREATE]


async def test_read_is_audited_with_actor_context(repo, audit):
    created = await repo.create(_new(), ACTOR)
    fetched = await repo.get_by_id(created.id, ACTOR)
    assert fetched.first_name == "Jordan"

    entries = await audit.entries_for(created.id)
    read = entries[-1]
    assert read.access_type == AccessType.READ
    assert read.user_id == "coordinator-1"
    assert read.ip_address == "192.168.10.5"
    assert read.user_agent == "ClinPortal/3.2"
    assert read.correlation_id == "req-42"


async def test_read_without_logging(repo, audit):
    created = await repo.create(_new(), ACTOR)
    await repo.get_by_id(created.id, ACTOR, log_access=False)
    assert len(await audit.entries_for(created.id)) == 1


async def test_default_network_context(repo, audit):
    created = await repo.create(_new(), AccessContext(user_id="u-9"))
    entries = await audit.entries_for(created.id)
    assert entries[0].ip_address == "0.0.0.0"
    assert entries[0].user_agent == "Unknown"


async def test_missing_participant_is_not_audited(repo, audit):
    with pytest.raises(NotFoundError) as exc_info:
        await repo.get_by_id("missing", ACTOR)
    assert exc_info.value.code == ErrorCode.PARTICIPANT_NOT_FOUND
    assert await audit.entries_for("missing") == []


async def test_soft_deleted_participant_is_hidden(repo, db_session):
    created = await repo.create(_new(), ACTOR)
    row = await db_session.get(Participant, created.id)
    row.soft_delete()
    await db_session.flush()
    with pytest.raises(NotFoundError):
        await repo.get_by_id(created.id, ACTOR)


async def test_get_by_external_id(repo, audit):
    created = await repo.create(_new("P-777"), ACTOR)
    fetched = await repo.get_by_external_id(STUDY, "P-777", ACTOR)
    assert fetched.id == created.id
    entries = await audit.entries_for(created.id)
    assert entries[-1].access_type == AccessType.READ


async def test_get_by_external_id_missing(repo):
    with pytest.raises(NotFoundError):
        await repo.get_by_external_id(STUDY, "P-404", ACTOR)


# ─── Listing ──────────────────────────────────────────────────────────────────

async def test_list_audits_each_returned_participant(repo, audit):
    ids = [(await repo.create(_new(f"P-{i:03d}"), ACTOR)).id for i in range(3)]
    page = await repo.list_participants(ACTOR, study_id=STUDY)
    assert page.total == 3
    assert {p.id for p in page.items} == set(ids)
    for participant_id in ids:
        entries = await audit.entries_for(participant_id)
        assert entries[-1].access_type == AccessType.LIST


async def test_list_pagination(repo, audit):
    for i in range(5):
        await repo.create(_new(f"P-{i:03d}"), ACTOR)
    page = await repo.list_participants(ACTOR, page=2, page_size=2)
    assert page.total == 5
    assert page.total_pages == 3
    assert len(page.items) == 2
    # Only participants on the returned page are audited as listed
    listed = [
        e
        for p in page.items
        for e in await audit.entries_for(p.id)
        if e.access_type == AccessType.LIST
    ]
    assert len(listed) == 2


async def test_list_filters_by_status_and_study(repo):
    await repo.create(_new("P-001", status=ParticipantStatus.ENROLLED), ACTOR)
    await repo.create(_new("P-002"), ACTOR)
    await repo.create(_new("P-003", study_id="study-0002"), ACTOR)

    enrolled = await repo.list_participants(ACTOR, status=ParticipantStatus.ENROLLED)
    assert [p.external_id for p in enrolled.items] == ["P-001"]

    other_study = await repo.list_participants(ACTOR, study_id="study-0002")
    assert [p.external_id for p in other_study.items] == ["P-003"]


async def test_empty_list(repo):
    page = await repo.list_participants(ACTOR, study_id="nobody")
    assert page.total == 0
    assert page.total_pages == 0
    assert page.items == []


# ─── Update ───────────────────────────────────────────────────────────────────

async def test_update_records_changed_field_names(repo, audit):
    created = await repo.create(_new(), ACTOR)
    updated = await repo.update(
        created.id,
        ParticipantUpdate(phone="+1-555-0100", email="jordan@example.org"),
        ACTOR,
    )
    assert updated.phone == "+1-555-0100"

    entry = (await audit.entries_for(created.id))[-1]
    assert entry.access_type == AccessType.UPDATE
    assert entry.fields_accessed == '["email", "phone"]'
    assert "jordan@example.org" not in entry.fields_accessed


async def test_update_sets_updated_by(repo, db_session):
    created = await repo.create(_new(), ACTOR)
    other = AccessContext(user_id="monitor-7")
    await repo.update(created.id, ParticipantUpdate(status=ParticipantStatus.ACTIVE), other)
    row = await db_session.get(Participant, created.id)
    assert row.updated_by == "monitor-7"
    assert row.created_by == "coordinator-1"
