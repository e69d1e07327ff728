import pytest

from reviewdesk.core.errors import Forbidden, Unauthorized
from reviewdesk.core.role_matrix import (
    authorize,
    can_perform_action,
    ensure_allowed,
    normalize_role,
)
from reviewdesk.models.manuscript import Manuscript, ManuscriptStatus, ReviewerEntry, ReviewerStatus
from reviewdesk.models.user import Identity

AUTHOR = Identity(id="a1", role="author")
OTHER_AUTHOR = Identity(id="a2", role="author")
REVIEWER = Identity(id="r1", role="reviewer")
EDITOR = Identity(id="e1", role="editor")
ADMIN = Identity(id="x1", role="admin")


def _manuscript(status: ManuscriptStatus = ManuscriptStatus.SUBMITTED, reviewers=None) -> Manuscript:
    return Manuscript(
        id="m1",
        title="A sufficiently long title",
        abstract="x" * 60,
        submitted_by="a1",
        manuscript_type="research",
        status=status,
        reviewers=reviewers or [],
    )


def test_normalize_role_strips_and_lowercases() -> None:
    assert normalize_role(" Editor ") == "editor"
    assert normalize_role(None) == ""


def test_admin_has_global_action_access() -> None:
    assert can_perform_action(action="manuscript:publish", role="admin") is True
    assert can_perform_action(action="unknown:anything", role="admin") is True


def test_author_cannot_invite_or_decide() -> None:
    assert can_perform_action(action="reviewer:invite", role="author") is False
    assert can_perform_action(action="decision:submit", role="author") is False
    assert can_perform_action(action="manuscript:create", role="author") is True


def test_publish_is_admin_only() -> None:
    for role in ("author", "reviewer", "editor"):
        assert can_perform_action(action="manuscript:publish", role=role) is False


def test_registration_is_public() -> None:
    assert authorize(None, "user:register").allowed is True


def test_missing_identity_is_unauthenticated() -> None:
    decision = authorize(None, "manuscript:read", _manuscript())
    assert decision.allowed is False
    assert decision.authenticated is False
    with pytest.raises(Unauthorized):
        ensure_allowed(None, "manuscript:read", _manuscript())


def test_author_reads_only_own_manuscript() -> None:
    ms = _manuscript()
    assert authorize(AUTHOR, "manuscript:read", ms).allowed is True
    decision = authorize(OTHER_AUTHOR, "manuscript:read", ms)
    assert decision.allowed is False
    assert "own" in (decision.reason or "")


def test_reviewer_reads_only_when_invited() -> None:
    assert authorize(REVIEWER, "manuscript:read", _manuscript()).allowed is False
    invited = _manuscript(reviewers=[ReviewerEntry.invite("r1")])
    assert authorize(REVIEWER, "manuscript:read", invited).allowed is True


def test_editor_cannot_see_drafts() -> None:
    assert authorize(EDITOR, "manuscript:read", _manuscript(ManuscriptStatus.DRAFT)).allowed is False
    assert authorize(EDITOR, "manuscript:read", _manuscript(ManuscriptStatus.UNDER_REVIEW)).allowed is True


def test_admin_bypasses_resource_rules() -> None:
    assert authorize(ADMIN, "manuscript:read", _manuscript(ManuscriptStatus.DRAFT)).allowed is True


def test_only_owner_may_submit_or_edit_draft() -> None:
    ms = _manuscript(ManuscriptStatus.DRAFT)
    assert authorize(AUTHOR, "manuscript:submit", ms).allowed is True
    assert authorize(OTHER_AUTHOR, "manuscript:update_draft", ms).allowed is False


def test_review_submission_requires_accepted_entry() -> None:
    entry = ReviewerEntry.invite("r1")
    ms = _manuscript(ManuscriptStatus.UNDER_REVIEW, reviewers=[entry])
    denied = authorize(REVIEWER, "review:submit", ms)
    assert denied.allowed is False
    assert "accept" in (denied.reason or "")

    accepted = ReviewerEntry.invite("r1").model_copy(update={"status": ReviewerStatus.ACCEPTED})
    ms = _manuscript(ManuscriptStatus.UNDER_REVIEW, reviewers=[accepted])
    assert authorize(REVIEWER, "review:submit", ms).allowed is True


def test_ensure_allowed_raises_forbidden_with_action() -> None:
    with pytest.raises(Forbidden) as exc:
        ensure_allowed(REVIEWER, "decision:submit", _manuscript())
    assert exc.value.status_code == 403
    assert exc.value.details == {"action": "decision:submit"}
