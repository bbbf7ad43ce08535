"""
Review application lifecycle tests.

Covers:
    - create: role/type matching, missing opportunity, duplicate → Conflict, caller without a handle
    - approve / reject: status change committed, one e-mail per applicant,
      e-mail failure surfaced as warnings, unknown id → NotFound w/o e-mail
    - re-transition: last write wins by default, 409 in strict mode
    - reject_all_pending: one commit, repeated and empty calls send nothing,
      rows decided by another writer are left alone
    - list_by_user / get_history: self-or-admin and the day window
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from review_api.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from review_api.integrations.gateway import GatewayResult
from review_api.models import db
from review_api.models.review import ReviewApplication
from review_api.services import review_application_service as svc
from tests.factories import admin, machine, make_application, make_opportunity, member


REVIEWER = ("Topcoder Talent", "reviewer")


@pytest.fixture()
def challenge(platform):
    platform.add_challenge(
        "chal-1",
        name="Marathon Match 150",
        phases=[{"name": "Review", "scheduledStartDate": "2026-11-01T10:00:00Z"}],
    )
    platform.emails.update({"2001": "alice@example.com", "2002": "bob@example.com"})
    return platform


# ═════════════════════════════════════════════════════════════════════════════
# create_application
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateApplication:
    def test_creates_pending_application_for_caller(self):
        opp = make_opportunity(type_="REGULAR_REVIEW")
        result = svc.create_application(member("2001", roles=REVIEWER),
                                        {"opportunityId": opp.id, "role": "reviewer"})
        assert result["status"] == "PENDING"
        assert result["role"] == "REVIEWER"
        assert result["userId"] == "2001"
        assert result["handle"] == "member2001"

    def test_role_must_match_opportunity_type(self):
        opp = make_opportunity(type_="REGULAR_REVIEW")
        with pytest.raises(ValidationError) as exc:
            svc.create_application(member("2001"), {"opportunityId": opp.id, "role": "PRIMARY_REVIEWER"})
        assert exc.value.details["expected"] == "COMPONENT_DEV_REVIEW"

    @pytest.mark.parametrize("role,opp_type", [
        ("PRIMARY_REVIEWER", "COMPONENT_DEV_REVIEW"),
        ("SPECIFICATION_REVIEWER", "SPEC_REVIEW"),
        ("ITERATIVE_REVIEWER", "ITERATIVE_REVIEW"),
    ])
    def test_matching_roles_are_accepted(self, role, opp_type):
        opp = make_opportunity(type_=opp_type)
        result = svc.create_application(member("2001"), {"opportunityId": opp.id, "role": role})
        assert result["role"] == role

    def test_unknown_role_is_rejected(self):
        opp = make_opportunity()
        with pytest.raises(ValidationError):
            svc.create_application(member("2001"), {"opportunityId": opp.id, "role": "JUDGE"})

    def test_missing_opportunity_is_validation_error(self):
        with pytest.raises(ValidationError):
            svc.create_application(member("2001"), {"opportunityId": "nope", "role": "REVIEWER"})

    def test_missing_fields(self):
        with pytest.raises(ValidationError):
            svc.create_application(member("2001"), {"role": "REVIEWER"})

    def test_duplicate_is_conflict(self):
        opp = make_opportunity()
        svc.create_application(member("2001"), {"opportunityId": opp.id, "role": "REVIEWER"})
        with pytest.raises(ConflictError):
            svc.create_application(member("2001"), {"opportunityId": opp.id, "role": "REVIEWER"})
        assert db.session.query(ReviewApplication).count() == 1

    def test_caller_without_handle_is_rejected(self):
        opp = make_opportunity()
        with pytest.raises(ValidationError):
            svc.create_application(machine(), {"opportunityId": opp.id, "role": "REVIEWER"})


# ═════════════════════════════════════════════════════════════════════════════
# approve / reject
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitions:
    def test_approve_commits_and_emails_applicant(self, challenge, app):
        opp = make_opportunity()
        application = make_application(opp, user_id="2001")

        result = svc.approve_application(admin(), application.id)

        assert result["status"] == "APPROVED"
        assert result["warnings"] == []
        assert db.session.get(ReviewApplication, application.id).status == "APPROVED"
        assert len(challenge.sent) == 1
        email = challenge.sent[0]
        assert email["template"] == app.config["SENDGRID_ACCEPT_REVIEW_APPLICATION_TEMPLATE"]
        assert email["recipients"] == ["alice@example.com"]
        assert email["data"]["handle"] == "member2001"
        assert email["data"]["reviewPhaseStart"] == "2026-11-01T10:00:00Z"
        assert email["data"]["challengeName"] == "Marathon Match 150"
        assert email["data"]["challengeUrl"].endswith("30001234")

    def test_reject_uses_reject_template(self, challenge, app):
        opp = make_opportunity()
        application = make_application(opp, user_id="2001")
        result = svc.reject_application(admin(), application.id)
        assert result["status"] == "REJECTED"
        assert challenge.sent[0]["template"] == app.config["SENDGRID_REJECT_REVIEW_APPLICATION_TEMPLATE"]

    def test_unknown_application_raises_not_found_without_email(self, challenge):
        with pytest.raises(NotFoundError):
            svc.approve_application(admin(), "missing-id")
        assert challenge.sent == []
        assert challenge.challenge_calls == []

    def test_email_failure_is_reported_not_rolled_back(self, challenge):
        challenge.email_result = GatewayResult.failure("HTTP 503: bus down", 503)
        opp = make_opportunity()
        application = make_application(opp, user_id="2001")

        result = svc.approve_application(admin(), application.id)

        assert result["status"] == "APPROVED"
        assert len(result["warnings"]) == 1
        assert "bus down" in result["warnings"][0]
        db.session.expire_all()
        assert db.session.get(ReviewApplication, application.id).status == "APPROVED"

    def test_missing_email_address_is_a_warning(self, challenge):
        opp = make_opportunity()
        application = make_application(opp, user_id="7777")
        result = svc.approve_application(admin(), application.id)
        assert result["status"] == "APPROVED"
        assert "7777" in result["warnings"][0]
        assert challenge.sent == []

    def test_challenge_lookup_failure_is_a_warning(self, platform):
        opp = make_opportunity(challenge_id="gone")
        application = make_application(opp, user_id="2001")
        result = svc.reject_application(admin(), application.id)
        assert result["status"] == "REJECTED"
        assert len(result["warnings"]) == 1
        assert platform.sent == []

    def test_review_phase_falls_back_to_opportunity_start(self, platform):
        platform.add_challenge("chal-2", phases=[])
        platform.emails["2001"] = "alice@example.com"
        start = datetime(2026, 12, 1, 9, 0, tzinfo=timezone.utc)
        opp = make_opportunity(challenge_id="chal-2", start_date=start)
        application = make_application(opp, user_id="2001")
        svc.approve_application(admin(), application.id)
        assert platform.sent[0]["data"]["reviewPhaseStart"].startswith("2026-12-01T09:00:00")

    def test_retransition_last_write_wins_by_default(self, challenge):
        opp = make_opportunity()
        application = make_application(opp, user_id="2001", status="APPROVED")
        result = svc.reject_application(admin(), application.id)
        assert result["status"] == "REJECTED"

    def test_retransition_is_conflict_in_strict_mode(self, challenge, app, monkeypatch):
        monkeypatch.setitem(app.config, "REVIEW_APPLICATION_STRICT_TRANSITIONS", True)
        opp = make_opportunity()
        application = make_application(opp, user_id="2001", status="APPROVED")
        with pytest.raises(InvalidTransitionError) as exc:
            svc.reject_application(admin(), application.id)
        assert exc.value.current == "APPROVED"
        assert challenge.sent == []

    def test_strict_mode_keeps_a_decision_committed_after_the_read(self, challenge, app, monkeypatch):
        monkeypatch.setitem(app.config, "REVIEW_APPLICATION_STRICT_TRANSITIONS", True)
        opp = make_opportunity()
        application = make_application(opp, user_id="2001")
        application_id = application.id
        table = ReviewApplication.__table__
        real_resolve = svc.resolve_transition

        def rejected_elsewhere(row, action, *, strict):
            target = real_resolve(row, action, strict=strict)
            db.session.execute(update(table).where(table.c.id == application_id).values(status="REJECTED"))
            db.session.commit()
            return target

        monkeypatch.setattr(svc, "resolve_transition", rejected_elsewhere)

        with pytest.raises(InvalidTransitionError) as exc:
            svc.approve_application(admin(), application_id)

        assert exc.value.current == "REJECTED"
        db.session.expire_all()
        assert db.session.get(ReviewApplication, application_id).status == "REJECTED"
        assert challenge.sent == []


class TestRejectAllPending:
    def test_rejects_only_pending(self, challenge):
        opp = make_opportunity()
        a = make_application(opp, user_id="2001")
        b = make_application(opp, user_id="2002")
        approved = make_application(opp, user_id="2003", status="APPROVED")

        result = svc.reject_all_pending(admin(), opp.id)

        assert sorted(x["id"] for x in result["applications"]) == sorted([a.id, b.id])
        assert all(x["status"] == "REJECTED" for x in result["applications"])
        assert db.session.get(ReviewApplication, approved.id).status == "APPROVED"
        assert sorted(e["recipients"][0] for e in challenge.sent) == ["alice@example.com", "bob@example.com"]
        assert result["warnings"] == []

    def test_nothing_pending_sends_nothing(self, challenge):
        opp = make_opportunity()
        make_application(opp, user_id="2001", status="REJECTED")
        result = svc.reject_all_pending(admin(), opp.id)
        assert result == {"applications": [], "warnings": []}
        assert challenge.sent == []

    def test_second_call_is_empty_and_sends_nothing(self, challenge):
        opp = make_opportunity()
        make_application(opp, user_id="2001")
        make_application(opp, user_id="2002")

        first = svc.reject_all_pending(admin(), opp.id)
        assert len(first["applications"]) == 2
        assert len(challenge.sent) == 2

        second = svc.reject_all_pending(admin(), opp.id)
        assert second == {"applications": [], "warnings": []}
        assert len(challenge.sent) == 2

    def test_skips_applications_decided_after_the_read(self, challenge, monkeypatch):
        opp = make_opportunity()
        a_id = make_application(opp, user_id="2001").id
        b_id = make_application(opp, user_id="2002").id
        table = ReviewApplication.__table__
        real_claim = svc._claim_pending

        def approved_elsewhere(application_id, target, user_id):
            if application_id == b_id:
                db.session.execute(update(table).where(table.c.id == b_id).values(status="APPROVED"))
            return real_claim(application_id, target, user_id)

        monkeypatch.setattr(svc, "_claim_pending", approved_elsewhere)

        result = svc.reject_all_pending(admin(), opp.id)

        assert [x["id"] for x in result["applications"]] == [a_id]
        db.session.expire_all()
        assert db.session.get(ReviewApplication, b_id).status == "APPROVED"
        assert [e["recipients"] for e in challenge.sent] == [["alice@example.com"]]

    def test_member_lookup_failure_is_single_warning(self, challenge):
        challenge.member_result = GatewayResult.failure("HTTP 500: member down", 500)
        opp = make_opportunity()
        make_application(opp, user_id="2001")
        make_application(opp, user_id="2002")
        result = svc.reject_all_pending(admin(), opp.id)
        assert len(result["applications"]) == 2
        assert len(result["warnings"]) == 1


# ═════════════════════════════════════════════════════════════════════════════
# Listing and history
# ═════════════════════════════════════════════════════════════════════════════


class TestListing:
    def test_list_pending(self):
        opp = make_opportunity()
        make_application(opp, user_id="2001")
        make_application(opp, user_id="2002", status="APPROVED")
        assert [a["userId"] for a in svc.list_pending()] == ["2001"]

    def test_list_by_user_self(self):
        opp = make_opportunity()
        make_application(opp, user_id="2001")
        assert len(svc.list_by_user(member("2001"), "2001")) == 1

    def test_list_by_user_other_member_forbidden(self):
        with pytest.raises(ForbiddenError):
            svc.list_by_user(member("2002"), "2001")

    def test_list_by_user_admin(self):
        opp = make_opportunity()
        make_application(opp, user_id="2001")
        assert len(svc.list_by_user(admin(), "2001")) == 1

    def test_list_by_opportunity(self):
        opp = make_opportunity()
        other = make_opportunity(challenge_id="chal-2")
        make_application(opp, user_id="2001")
        make_application(other, user_id="2001")
        assert [a["opportunityId"] for a in svc.list_by_opportunity(opp.id)] == [opp.id]


class TestHistory:
    def test_returns_recent_approved_only(self):
        opp = make_opportunity()
        recent = make_application(opp, user_id="2001", status="APPROVED")
        old_opp = make_opportunity(challenge_id="chal-old")
        make_application(old_opp, user_id="2001", status="APPROVED",
                         created_at=datetime.now(timezone.utc) - timedelta(days=90))
        pending_opp = make_opportunity(challenge_id="chal-pending")
        make_application(pending_opp, user_id="2001", status="PENDING")

        history = svc.get_history(member("2001"), "2001")
        assert [h["id"] for h in history] == [recent.id]

    def test_range_widens_window(self):
        old_opp = make_opportunity(challenge_id="chal-old")
        make_application(old_opp, user_id="2001", status="APPROVED",
                         created_at=datetime.now(timezone.utc) - timedelta(days=90))
        assert len(svc.get_history(member("2001"), "2001", days=120)) == 1

    def test_non_positive_range_rejected(self):
        with pytest.raises(ValidationError):
            svc.get_history(member("2001"), "2001", days=0)

    def test_other_member_forbidden(self):
        with pytest.raises(ForbiddenError):
            svc.get_history(member("2002"), "2001")
