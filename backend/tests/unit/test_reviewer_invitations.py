from datetime import datetime, timedelta, timezone

import pytest

from reviewdesk.core.errors import Conflict, Forbidden, ValidationFailed
from reviewdesk.models.manuscript import FileDescriptor, ManuscriptFiles, ManuscriptStatus, ReviewerStatus
from reviewdesk.schemas.manuscript import ManuscriptSubmission
from reviewdesk.schemas.review import InviteReviewersPayload
from reviewdesk.services.manuscript_service import ManuscriptService
from reviewdesk.services.reviewer_service import ReviewerService

PDF = FileDescriptor(filename="paper.pdf", url="/uploads/k/paper.pdf")


@pytest.fixture
def svc(store) -> ReviewerService:
    return ReviewerService(store, deadline_days=14)


def _manuscript(store, people, manuscript_data, *, status="submitted"):
    payload = ManuscriptSubmission.model_validate({**manuscript_data(), "status": status})
    return ManuscriptService(store).create(people["author"], payload, ManuscriptFiles(manuscript=PDF))


def _invite(*user_ids, deadline=None):
    return InviteReviewersPayload(reviewers=[{"user_id": u, "deadline": deadline} for u in user_ids])


def test_first_invitation_moves_submitted_to_under_review(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    saved, invited = svc.invite(people["editor"], ms.id, _invite("reviewer-1", "reviewer-2"))
    assert invited == ["reviewer-1", "reviewer-2"]
    assert saved.status == ManuscriptStatus.UNDER_REVIEW
    assert [r.status for r in saved.reviewers] == [ReviewerStatus.INVITED, ReviewerStatus.INVITED]
    assert saved.timeline[-1].event == "2 reviewer(s) invited"


def test_default_deadline_uses_configured_days(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    saved, _ = svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    entry = saved.reviewer_entry("reviewer-1")
    assert entry.deadline - entry.invited_at == timedelta(days=14)


def test_explicit_deadline_is_kept(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    deadline = datetime.now(timezone.utc) + timedelta(days=30)
    saved, _ = svc.invite(people["editor"], ms.id, _invite("reviewer-1", deadline=deadline))
    assert saved.reviewer_entry("reviewer-1").deadline == deadline


def test_reinviting_filters_existing_reviewers(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    saved, invited = svc.invite(people["editor"], ms.id, _invite("reviewer-1", "reviewer-2"))
    assert invited == ["reviewer-2"]
    assert len(saved.reviewers) == 2
    assert saved.timeline[-1].event == "1 reviewer(s) invited"


def test_all_already_invited_is_conflict_and_leaves_manuscript_untouched(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    saved, _ = svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    with pytest.raises(Conflict) as exc:
        svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    assert exc.value.message == "All selected reviewers have already been invited"
    after = svc.manuscripts.load(ms.id)
    assert len(after.timeline) == len(saved.timeline)
    assert len(after.reviewers) == 1


def test_draft_rejects_invitations(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data, status="draft")
    with pytest.raises(Conflict):
        svc.invite(people["editor"], ms.id, _invite("reviewer-1"))


def test_only_editors_invite(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    with pytest.raises(Forbidden):
        svc.invite(people["author"], ms.id, _invite("reviewer-1"))


def test_invitees_must_be_registered_reviewers(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    with pytest.raises(ValidationFailed) as exc:
        svc.invite(people["editor"], ms.id, _invite("ghost", "author-2"))
    messages = {d["field"]: d["message"] for d in exc.value.details}
    assert messages == {"ghost": "User not found", "author-2": "User is not a reviewer"}
    assert svc.manuscripts.load(ms.id).status == ManuscriptStatus.SUBMITTED


def test_past_deadline_rejected(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    past = datetime.now(timezone.utc) - timedelta(days=1)
    with pytest.raises(ValidationFailed):
        svc.invite(people["editor"], ms.id, _invite("reviewer-1", deadline=past))


def test_accept_then_second_response_conflicts(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    svc.invite(people["editor"], ms.id, _invite("reviewer-1"))

    saved = svc.respond(people["reviewer"], ms.id, "accept")
    entry = saved.reviewer_entry("reviewer-1")
    assert entry.status == ReviewerStatus.ACCEPTED
    assert entry.responded_at is not None
    assert saved.timeline[-1].event == "Reviewer accepted invitation"

    with pytest.raises(Conflict) as exc:
        svc.respond(people["reviewer"], ms.id, "decline")
    assert "already accepted" in exc.value.message


def test_decline_records_timeline(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    saved = svc.respond(people["reviewer"], ms.id, "decline")
    assert saved.reviewer_entry("reviewer-1").status == ReviewerStatus.DECLINED
    assert saved.timeline[-1].event == "Reviewer declined invitation"


def test_uninvited_reviewer_cannot_respond(svc, store, people, manuscript_data):
    ms = _manuscript(store, people, manuscript_data)
    svc.invite(people["editor"], ms.id, _invite("reviewer-1"))
    with pytest.raises(Forbidden):
        svc.respond(people["reviewer2"], ms.id, "accept")
