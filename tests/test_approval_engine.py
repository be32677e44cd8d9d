"""
Tests for the approval state machine.

Covers stage transitions, token consumption, identity checks and
concurrent clicks.
"""

import threading

import pytest

from reqapprove.datastore import Decision, RowState, Stage
from reqapprove.errors import InvalidRequest, InvalidToken, LockTimeout, Unauthorized
from reqapprove.workflow import DocumentLock

from conftest import STAKEHOLDERS, REQUESTOR, action_params


SAM = "sam@claimclimbers.com"
MATT = "matt@claimclimbers.com"
DANA = "dana@claimclimbers.com"


@pytest.fixture
def stage_1_mail(services, mailer, row_12):
    """Open stage 1 for row 12 and return each stakeholder's mail"""
    services.ingest.handle_new_row(row_12)
    mail = {m['to']: m for m in mailer.sent}
    mailer.clear()
    return mail


def click(services, mail, stage, kind="Approve", acting=None):
    params = action_params(mail, kind)
    return services.machine.handle_decision(
        row_id=int(params['row']),
        stage=stage,
        decision=Decision(params['decision']),
        approver_email=params['approver'],
        token=params['token'],
        acting_email=acting or params['approver']
    )


class TestStageOne:
    """Stage-1 decisions"""

    def test_stage_one_emails_have_distinct_tokens(self, stage_1_mail):
        """Each of the 3 stakeholders gets one mail with its own token"""
        assert sorted(stage_1_mail) == sorted(STAKEHOLDERS)
        tokens = {action_params(m)['token'] for m in stage_1_mail.values()}
        assert len(tokens) == 3

    def test_approve_advances_to_stage_two(self, services, mailer, stage_1_mail):
        """sam approves row 12: decision recorded, stage 2 opened for everyone"""
        sam_params = action_params(stage_1_mail[SAM])

        outcome = click(services, stage_1_mail[SAM], Stage.FIRST)

        assert outcome.state is RowState.AWAITING_STAGE_2
        row = services.rows.read_row(12)
        assert row['1st Approval Status'] == "Approved"
        assert row['1st Approval Timestamp'] == outcome.timestamp
        assert row['1st Approver'] == SAM
        assert row['2nd Approval Status'] == ""

        # Stage-2 batch: exactly the stakeholder set, no stage-1 resend
        assert sorted(m['to'] for m in mailer.sent) == sorted(STAKEHOLDERS)
        assert all("2nd approval needed" in m['subject'] for m in mailer.sent)
        stage_2_tokens = {action_params(m)['token'] for m in mailer.sent}
        assert len(stage_2_tokens) == 3
        for mail in mailer.sent:
            params = action_params(mail)
            assert params['stage'] == "2"
            assert services.tokens.verify(12, Stage.SECOND, mail['to'], params['token'])

        assert not services.tokens.verify(12, Stage.FIRST, SAM, sam_params['token'])

    def test_deny_is_terminal(self, services, mailer, stage_1_mail):
        """matt denies: requestor notified, no stage-2 tokens"""
        outcome = click(services, stage_1_mail[MATT], Stage.FIRST, kind="Deny")

        assert outcome.state is RowState.DENIED
        assert services.rows.read_row(12)['1st Approval Status'] == "Denied"

        assert len(mailer.sent) == 1
        assert mailer.sent[0]['to'] == REQUESTOR
        assert "Denied" in mailer.sent[0]['subject']

        for approver in STAKEHOLDERS:
            assert services.tokens.properties.get_property(f"12_2_{approver}") is None

    def test_reused_token_rejected(self, services, stage_1_mail):
        """A consumed token yields InvalidToken on re-submission"""
        click(services, stage_1_mail[SAM], Stage.FIRST)

        with pytest.raises(InvalidToken):
            click(services, stage_1_mail[SAM], Stage.FIRST)

    def test_sibling_stage_one_links_invalidated(self, services, stage_1_mail):
        """Stale stage-1 link clicked after stage 2 was reached"""
        click(services, stage_1_mail[SAM], Stage.FIRST)

        with pytest.raises(InvalidToken):
            click(services, stage_1_mail[MATT], Stage.FIRST, kind="Deny")

        assert services.rows.read_row(12)['1st Approver'] == SAM

    def test_decided_stage_not_rewritten(self, services, mailer, stage_1_mail):
        """Even a freshly issued stage-1 token cannot overwrite a decided stage"""
        click(services, stage_1_mail[SAM], Stage.FIRST)
        mailer.clear()
        token = services.tokens.issue(12, Stage.FIRST, MATT)

        with pytest.raises(InvalidToken):
            services.machine.handle_decision(12, Stage.FIRST, Decision.DENIED, MATT, token, MATT)

        assert services.rows.read_row(12)['1st Approval Status'] == "Approved"
        assert mailer.sent == []


class TestStageTwo:
    """Stage-2 decisions"""

    @pytest.fixture
    def stage_2_mail(self, services, mailer, stage_1_mail):
        click(services, stage_1_mail[SAM], Stage.FIRST)
        mail = {m['to']: m for m in mailer.sent}
        mailer.clear()
        return mail

    @pytest.mark.parametrize("kind,decision,state", [
        ("Approve", "Approved", RowState.APPROVED),
        ("Deny", "Denied", RowState.DENIED),
    ])
    def test_final_decision(self, services, mailer, stage_2_mail, kind, decision, state):
        outcome = click(services, stage_2_mail[DANA], Stage.SECOND, kind=kind)

        assert outcome.state is state
        row = services.rows.read_row(12)
        assert row['2nd Approval Status'] == decision
        assert row['2nd Approver'] == DANA

        assert [m['to'] for m in mailer.sent] == [REQUESTOR]
        assert decision in mailer.sent[0]['subject']

    def test_terminal_row_accepts_nothing(self, services, mailer, stage_2_mail):
        """After the final decision every outstanding stage-2 link is dead"""
        click(services, stage_2_mail[DANA], Stage.SECOND)
        mailer.clear()

        for approver in (SAM, MATT):
            with pytest.raises(InvalidToken):
                click(services, stage_2_mail[approver], Stage.SECOND, kind="Deny")

        assert services.rows.read_row(12)['2nd Approval Status'] == "Approved"
        assert mailer.sent == []

    def test_stage_two_token_not_valid_for_stage_one(self, services, stage_2_mail):
        params = action_params(stage_2_mail[MATT])

        with pytest.raises(InvalidToken):
            services.machine.handle_decision(12, Stage.FIRST, Decision.APPROVED, MATT, params['token'], MATT)


class TestAuthorization:
    """Token and identity checks before the lock"""

    def test_forwarded_link_unauthorized(self, services, stage_1_mail):
        """Another user clicking sam's link is refused and the token survives"""
        with pytest.raises(Unauthorized):
            click(services, stage_1_mail[SAM], Stage.FIRST, acting=MATT)

        token = action_params(stage_1_mail[SAM])['token']
        assert services.tokens.verify(12, Stage.FIRST, SAM, token)
        assert services.rows.read_row(12)['1st Approval Status'] == ""

        outcome = click(services, stage_1_mail[SAM], Stage.FIRST)
        assert outcome.approver == SAM

    def test_unauthenticated_user(self, services, stage_1_mail):
        params = action_params(stage_1_mail[SAM])
        with pytest.raises(Unauthorized):
            services.machine.handle_decision(12, Stage.FIRST, Decision.APPROVED, SAM, params['token'], None)

    def test_identity_case_insensitive(self, services, stage_1_mail):
        outcome = click(services, stage_1_mail[SAM], Stage.FIRST, acting="Sam@ClaimClimbers.com")
        assert outcome.approver == SAM

    def test_wrong_token(self, services, stage_1_mail):
        with pytest.raises(InvalidToken):
            services.machine.handle_decision(12, Stage.FIRST, Decision.APPROVED, SAM, "forged", SAM)

    def test_non_stakeholder(self, services, stage_1_mail):
        token = action_params(stage_1_mail[SAM])['token']
        with pytest.raises(InvalidToken):
            services.machine.handle_decision(12, Stage.FIRST, Decision.APPROVED, "eve@x.com", token, "eve@x.com")

    def test_pending_decision_rejected(self, services, stage_1_mail):
        token = action_params(stage_1_mail[SAM])['token']
        with pytest.raises(InvalidRequest):
            services.machine.handle_decision(12, Stage.FIRST, Decision.PENDING, SAM, token, SAM)

    def test_missing_row(self, services):
        """A token for a row that does not exist fails like any bad token"""
        token = services.tokens.issue(77, Stage.FIRST, SAM)
        with pytest.raises(InvalidToken):
            services.machine.handle_decision(77, Stage.FIRST, Decision.APPROVED, SAM, token, SAM)


class TestConcurrency:
    """Document lock behaviour"""

    def test_double_click_records_once(self, services, mailer, stage_1_mail):
        """Two concurrent clicks with one token: exactly one wins"""
        barrier = threading.Barrier(2)
        results, errors = [], []

        def worker():
            barrier.wait()
            try:
                results.append(click(services, stage_1_mail[SAM], Stage.FIRST))
            except (InvalidToken, LockTimeout) as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == 1
        assert len(errors) == 1
        # One stage-2 batch only
        assert len(mailer.sent) == len(STAKEHOLDERS)

    def test_racing_approvers_one_decision(self, services, mailer, stage_1_mail):
        """sam approves while matt denies: one decision, the other link dies"""
        barrier = threading.Barrier(2)
        results, errors = [], []

        def worker(approver, kind):
            barrier.wait()
            try:
                results.append(click(services, stage_1_mail[approver], Stage.FIRST, kind=kind))
            except (InvalidToken, LockTimeout) as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(SAM, "Approve")),
            threading.Thread(target=worker, args=(MATT, "Deny")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == 1
        assert len(errors) == 1
        row = services.rows.read_row(12)
        assert row['1st Approver'] == results[0].approver

    def test_lock_timeout_leaves_token(self, services, stage_1_mail):
        """On LockTimeout nothing is recorded and the link still works"""
        services.machine.lock = DocumentLock(timeout_seconds=0.05)

        with services.machine.lock.hold("test"):
            with pytest.raises(LockTimeout):
                click(services, stage_1_mail[SAM], Stage.FIRST)

        assert services.rows.read_row(12)['1st Approval Status'] == ""
        outcome = click(services, stage_1_mail[SAM], Stage.FIRST)
        assert outcome.state is RowState.AWAITING_STAGE_2

    def test_lock_requires_positive_timeout(self):
        with pytest.raises(ValueError):
            DocumentLock(timeout_seconds=0)
