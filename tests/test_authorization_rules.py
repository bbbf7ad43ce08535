"""
Authorization rule tests.

Covers:
    - artifact_access: admin/machine/owner short-circuit without lookups,
      copilot full access, everyone else denied
    - visible_artifacts / check_artifact_fetch: internal artifacts hidden
      from owner-level access
    - check_artifact_write: owner or admin, internal uploads admin only
    - check_submission_download: rule precedence and lazy lookups
    - check_run_access: role set, submitter-only restriction before
      COMPLETED
    - check_comment_owner: author only, admin does not bypass
    - check_contact_roles
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from review_api.core.exceptions import ForbiddenError
from review_api.core.identity import ResourceRoleName as R
from review_api.services import authorization as authz
from review_api.services.authorization import ArtifactAccess
from tests.factories import admin, machine, member


def _submission(member_id="1001", challenge_id="chal-1", type_="CONTEST_SUBMISSION", id_="sub-1"):
    return SimpleNamespace(id=id_, member_id=member_id, challenge_id=challenge_id, type=type_)


def _roles(*roles):
    return MagicMock(return_value=frozenset(roles))


def _challenge(status):
    return MagicMock(return_value={"id": "chal-1", "status": status})


# ═════════════════════════════════════════════════════════════════════════════
# Artifacts
# ═════════════════════════════════════════════════════════════════════════════


class TestArtifactAccess:
    def test_admin_gets_full_without_lookup(self):
        lookup = _roles()
        assert authz.artifact_access(admin(), _submission(), role_lookup=lookup) is ArtifactAccess.FULL
        lookup.assert_not_called()

    def test_machine_gets_full_without_lookup(self):
        lookup = _roles()
        assert authz.artifact_access(machine(), _submission(), role_lookup=lookup) is ArtifactAccess.FULL
        lookup.assert_not_called()

    def test_owner_gets_public_only_without_lookup(self):
        lookup = _roles()
        access = authz.artifact_access(member("1001"), _submission("1001"), role_lookup=lookup)
        assert access is ArtifactAccess.PUBLIC_ONLY
        lookup.assert_not_called()

    def test_copilot_gets_full(self):
        lookup = _roles(R.COPILOT)
        access = authz.artifact_access(member("3003"), _submission("1001"), role_lookup=lookup)
        assert access is ArtifactAccess.FULL
        lookup.assert_called_once_with("chal-1", "3003")

    @pytest.mark.parametrize("roles", [(), (R.REVIEWER,), (R.SUBMITTER,), (R.MANAGER,)])
    def test_others_are_denied(self, roles):
        with pytest.raises(ForbiddenError):
            authz.artifact_access(member("3003"), _submission("1001"), role_lookup=_roles(*roles))


class TestArtifactVisibility:
    def _artifacts(self):
        return [
            SimpleNamespace(id="a-1", is_internal=False),
            SimpleNamespace(id="a-2", is_internal=True),
        ]

    def test_public_only_hides_internal(self):
        visible = authz.visible_artifacts(ArtifactAccess.PUBLIC_ONLY, self._artifacts())
        assert [a.id for a in visible] == ["a-1"]

    def test_full_sees_everything(self):
        visible = authz.visible_artifacts(ArtifactAccess.FULL, self._artifacts())
        assert [a.id for a in visible] == ["a-1", "a-2"]

    def test_fetch_internal_with_public_only_is_forbidden(self):
        with pytest.raises(ForbiddenError):
            authz.check_artifact_fetch(member(), ArtifactAccess.PUBLIC_ONLY,
                                       SimpleNamespace(id="a-2", is_internal=True))

    def test_fetch_internal_with_full_is_allowed(self):
        authz.check_artifact_fetch(admin(), ArtifactAccess.FULL, SimpleNamespace(id="a-2", is_internal=True))


class TestArtifactWrite:
    @pytest.mark.parametrize("identity,internal,allowed", [
        (member("1001"), False, True),
        (member("1001"), True, False),
        (member("3003"), False, False),
        (admin(), False, True),
        (admin(), True, True),
        (machine(), True, True),
    ])
    def test_write_grid(self, identity, internal, allowed):
        sub = _submission("1001")
        if allowed:
            authz.check_artifact_write(identity, sub, "upload", internal=internal)
        else:
            with pytest.raises(ForbiddenError):
                authz.check_artifact_write(identity, sub, "upload", internal=internal)


# ═════════════════════════════════════════════════════════════════════════════
# Submission download
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmissionDownload:
    def _check(self, identity, sub, roles=(), status="ACTIVE", passing=False):
        role_lookup = _roles(*roles)
        challenge_lookup = _challenge(status)
        passing_lookup = MagicMock(return_value=passing)
        rule = authz.check_submission_download(
            identity, sub,
            role_lookup=role_lookup,
            challenge_lookup=challenge_lookup,
            has_passing_submission=passing_lookup,
        )
        return rule, role_lookup, challenge_lookup, passing_lookup

    def test_admin_needs_no_lookup(self):
        rule, roles, challenge, passing = self._check(admin(), _submission())
        assert rule == "admin"
        roles.assert_not_called()
        challenge.assert_not_called()
        passing.assert_not_called()

    def test_screener(self):
        rule, _, challenge, _ = self._check(member("3003"), _submission(), roles=(R.SCREENER,))
        assert rule == "screener"
        challenge.assert_not_called()

    def test_checkpoint_screener_on_checkpoint_submission(self):
        sub = _submission(type_="CHECKPOINT_SUBMISSION")
        rule, *_ = self._check(member("3003"), sub, roles=(R.CHECKPOINT_SCREENER,))
        assert rule == "checkpoint_screener"

    def test_checkpoint_screener_on_contest_submission_is_denied(self):
        with pytest.raises(ForbiddenError):
            self._check(member("3003"), _submission(), roles=(R.CHECKPOINT_SCREENER,))

    def test_passing_submitter_on_completed_challenge(self):
        rule, _, challenge, passing = self._check(
            member("1002"), _submission("1001"), roles=(R.SUBMITTER,), status="COMPLETED", passing=True,
        )
        assert rule == "passing_submitter"
        challenge.assert_called_once_with("chal-1")
        passing.assert_called_once()

    def test_submitter_on_active_challenge_is_denied_without_passing_lookup(self):
        role_lookup = _roles(R.SUBMITTER)
        passing = MagicMock(return_value=True)
        with pytest.raises(ForbiddenError):
            authz.check_submission_download(
                member("1002"), _submission("1001"),
                role_lookup=role_lookup,
                challenge_lookup=_challenge("ACTIVE"),
                has_passing_submission=passing,
            )
        passing.assert_not_called()

    def test_submitter_without_passing_submission_is_denied(self):
        with pytest.raises(ForbiddenError):
            self._check(member("1002"), _submission("1001"), roles=(R.SUBMITTER,),
                        status="COMPLETED", passing=False)

    @pytest.mark.parametrize("roles", [(), (R.REVIEWER,), (R.COPILOT,)])
    def test_other_roles_are_denied(self, roles):
        with pytest.raises(ForbiddenError):
            self._check(member("3003"), _submission(), roles=roles, status="COMPLETED", passing=True)

    def test_screener_wins_over_submitter(self):
        rule, _, challenge, _ = self._check(
            member("3003"), _submission(), roles=(R.SUBMITTER, R.SCREENER), status="ACTIVE",
        )
        assert rule == "screener"
        challenge.assert_not_called()


# ═════════════════════════════════════════════════════════════════════════════
# Workflow runs and comments
# ═════════════════════════════════════════════════════════════════════════════


class TestRunAccess:
    def test_admin_and_machine_skip_lookups(self):
        lookup = _roles()
        for identity in (admin(), machine()):
            authz.check_run_access(identity, _submission(), role_lookup=lookup,
                                   challenge_lookup=_challenge("ACTIVE"))
        lookup.assert_not_called()

    @pytest.mark.parametrize("role", [R.REVIEWER, R.ITERATIVE_REVIEWER, R.MANAGER, R.COPILOT])
    def test_non_submitter_roles_pass(self, role):
        challenge = _challenge("ACTIVE")
        authz.check_run_access(member("3003"), _submission("1001"), role_lookup=_roles(role),
                               challenge_lookup=challenge)
        challenge.assert_not_called()

    @pytest.mark.parametrize("roles", [(), (R.SCREENER,), (R.CLIENT_MANAGER,)])
    def test_without_run_role_is_denied(self, roles):
        with pytest.raises(ForbiddenError, match="Insufficient permissions"):
            authz.check_run_access(member("3003"), _submission(), role_lookup=_roles(*roles),
                                   challenge_lookup=_challenge("COMPLETED"))

    def test_submitter_sees_own_run_before_completion(self):
        challenge = _challenge("ACTIVE")
        authz.check_run_access(member("1001"), _submission("1001"), role_lookup=_roles(R.SUBMITTER),
                               challenge_lookup=challenge)
        challenge.assert_not_called()

    def test_submitter_denied_other_run_before_completion(self):
        with pytest.raises(ForbiddenError):
            authz.check_run_access(member("1002"), _submission("1001"), role_lookup=_roles(R.SUBMITTER),
                                   challenge_lookup=_challenge("ACTIVE"))

    def test_submitter_sees_other_run_after_completion(self):
        authz.check_run_access(member("1002"), _submission("1001"), role_lookup=_roles(R.SUBMITTER),
                               challenge_lookup=_challenge("COMPLETED"))

    def test_submitter_who_is_also_reviewer_is_not_restricted(self):
        challenge = _challenge("ACTIVE")
        authz.check_run_access(member("1002"), _submission("1001"),
                               role_lookup=_roles(R.SUBMITTER, R.REVIEWER), challenge_lookup=challenge)
        challenge.assert_not_called()


class TestCommentOwner:
    def test_author_may_update(self):
        authz.check_comment_owner(member("1001"), SimpleNamespace(id="c-1", user_id="1001"))

    def test_other_member_is_denied(self):
        with pytest.raises(ForbiddenError):
            authz.check_comment_owner(member("1002"), SimpleNamespace(id="c-1", user_id="1001"))

    def test_admin_does_not_bypass(self):
        with pytest.raises(ForbiddenError):
            authz.check_comment_owner(admin(), SimpleNamespace(id="c-1", user_id="1001"))


class TestContactRoles:
    RESOURCES = [
        {"id": "r-1", "roleName": "Observer"},
        {"id": "r-2", "roleName": "Reviewer"},
    ]

    def test_matching_role_returns_resource(self):
        assert authz.check_contact_roles(member(), self.RESOURCES, "chal-1")["id"] == "r-2"

    def test_resource_id_restricts_rows(self):
        with pytest.raises(ForbiddenError):
            authz.check_contact_roles(member(), self.RESOURCES, "chal-1", "r-1")

    def test_no_resources_is_denied(self):
        with pytest.raises(ForbiddenError):
            authz.check_contact_roles(member(), [], "chal-1")
