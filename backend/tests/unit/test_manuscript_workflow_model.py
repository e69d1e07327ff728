from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from reviewdesk.core.errors import Conflict
from reviewdesk.models.manuscript import (
    EditorialDecision,
    FileDescriptor,
    Manuscript,
    ManuscriptFiles,
    ManuscriptStatus,
    ReviewerEntry,
    ReviewerStatus,
    normalize_status,
)


def _manuscript(**overrides) -> Manuscript:
    data = {
        "title": "A sufficiently long title",
        "abstract": "x" * 60,
        "submitted_by": "a1",
        "manuscript_type": "research",
    }
    data.update(overrides)
    return Manuscript(**data)


def test_allowed_next_edges():
    assert ManuscriptStatus.allowed_next("draft") == {"submitted"}
    assert ManuscriptStatus.allowed_next("submitted") == {"under_review"}
    assert ManuscriptStatus.allowed_next("under_review") == {"accepted", "revision_required", "rejected"}
    assert "under_review" in ManuscriptStatus.allowed_next("revision_required")
    assert ManuscriptStatus.allowed_next("accepted") == {"published"}
    assert ManuscriptStatus.allowed_next("rejected") == set()
    assert ManuscriptStatus.allowed_next("published") == set()


def test_no_transition_returns_to_draft():
    for status in ManuscriptStatus:
        assert "draft" not in ManuscriptStatus.allowed_next(status.value)


def test_normalize_status_accepts_dashes_and_case():
    assert normalize_status("Under-Review") == "under_review"
    assert normalize_status("nope") is None
    assert normalize_status("  ") is None


def test_transition_to_applies_valid_edge_and_returns_previous():
    ms = _manuscript()
    assert ms.transition_to(ManuscriptStatus.SUBMITTED) == "draft"
    assert ms.status == ManuscriptStatus.SUBMITTED


def test_transition_to_rejects_skip_and_keeps_status():
    ms = _manuscript()
    with pytest.raises(Conflict) as exc:
        ms.transition_to("accepted")
    assert exc.value.details["from"] == "draft"
    assert exc.value.details["allowed"] == ["submitted"]
    assert ms.status == ManuscriptStatus.DRAFT


def test_transition_to_unknown_status_is_conflict():
    with pytest.raises(Conflict):
        _manuscript().transition_to("archived")


def test_timeline_and_decisions_are_append_only_tuples():
    ms = _manuscript()
    ms.append_timeline("Draft created", actor="a1")
    ms.append_timeline("Manuscript submitted", actor="a1")
    assert isinstance(ms.timeline, tuple)
    assert [e.event for e in ms.timeline] == ["Draft created", "Manuscript submitted"]

    decision = EditorialDecision(editor="e1", decision="accept", comments="Looks good")
    ms.append_decision(decision)
    assert ms.editorial_decisions == (decision,)
    with pytest.raises(ValidationError):
        decision.comments = "changed"
    with pytest.raises(ValidationError):
        ms.timeline[0].event = "rewritten"


def test_snapshot_version_numbers_increase():
    file = FileDescriptor(filename="paper.pdf", url="/uploads/a/paper.pdf", size=10, mime_type="application/pdf")
    ms = _manuscript(files=ManuscriptFiles(manuscript=file))
    v1 = ms.snapshot_version()
    v2 = ms.snapshot_version(changelog="Revised methods")
    assert (v1.version, v2.version) == (1, 2)
    assert ms.current_version == 2
    assert ms.versions[0].files.manuscript.filename == "paper.pdf"


def test_reviewer_entry_default_deadline_is_fourteen_days():
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    entry = ReviewerEntry.invite("r1", now=now)
    assert entry.status == ReviewerStatus.INVITED
    assert entry.invited_at == now
    assert entry.deadline == now + timedelta(days=14)


def test_reviewer_entry_respond_only_once():
    entry = ReviewerEntry.invite("r1")
    entry.respond(accept=True)
    assert entry.status == ReviewerStatus.ACCEPTED
    assert entry.responded_at is not None
    with pytest.raises(Conflict) as exc:
        entry.respond(accept=False)
    assert "already accepted" in exc.value.message


def test_reviewer_entry_complete_requires_accepted():
    entry = ReviewerEntry.invite("r1")
    with pytest.raises(Conflict):
        entry.complete()
    entry.respond(accept=True)
    entry.complete()
    assert entry.status == ReviewerStatus.COMPLETED
    assert entry.completed_at is not None


def test_add_reviewer_rejects_duplicates():
    ms = _manuscript()
    ms.add_reviewer(ReviewerEntry.invite("r1"))
    with pytest.raises(Conflict):
        ms.add_reviewer(ReviewerEntry.invite("r1"))
    assert ms.has_reviewer("r1")
    assert not ms.has_reviewer("r2")


def test_document_round_trip_keeps_timeline_order():
    ms = _manuscript(id="m1")
    ms.append_timeline("Draft created", actor="a1")
    restored = Manuscript.from_document(ms.to_document())
    assert restored.id == "m1"
    assert restored.timeline[0].event == "Draft created"
    assert restored.status == ManuscriptStatus.DRAFT
