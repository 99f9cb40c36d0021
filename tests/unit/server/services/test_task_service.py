"""Tests for TaskService."""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from grouptodo.server.auth.authorization import GroupRole
from grouptodo.server.errors import (
    CompletionPolicyNotMetError,
    ForceCloseReasonRequiredError,
    GroupNotFoundError,
    InvalidAssignmentTransitionError,
    InvalidTaskTransitionError,
    InvalidTokenError,
    MemberNotFoundError,
    NotAMemberError,
    NotAuthorizedError,
    TaskNotFoundError,
)
from grouptodo.server.services.action_token_service import format_opaque_token
from grouptodo.server.services.email_service import MailTemplate
from grouptodo.server.services.group_member_service import GroupMemberService
from grouptodo.server.services.task_service import TaskService
from grouptodo.storage.action_token import ActionToken
from grouptodo.storage.group_store import GroupStore
from grouptodo.storage.task import (
    AssignmentStatus,
    CompletionPolicy,
    SubTask,
    Task,
    TaskStatus,
)
from grouptodo.storage.task_store import TaskStore


@pytest.fixture
def service(seeded, action_tokens, mailer, config, clock):
    return TaskService(
        unit_of_work=seeded,
        action_tokens=action_tokens,
        mailer=mailer,
        config=config,
        clock=clock,
    )


@pytest.fixture
def task_42(seeded, clock):
    """Open group task 42 in group 3, with user 9 added to the group."""
    with seeded.transaction() as session:
        GroupStore.add_member(session, 3, 9, GroupRole.MEMBER, clock.now())
        session.add(
            Task(
                id=42,
                owner_id=1,
                group_id=3,
                title='Plan the offsite',
                priority=2,
                status=TaskStatus.OPEN,
                completion_policy=CompletionPolicy.ALL_ASSIGNEES,
                closed_with_open_assignees=False,
                created_at=clock.now(),
                updated_at=clock.now(),
            )
        )
    return 42


def _assignment_status(unit_of_work, task_id, assignee_id):
    with unit_of_work.transaction() as session:
        return TaskStore.get_task_assignee(session, task_id, assignee_id).status


def _decision_token(mailer):
    """Pull the opaque token out of the accept link of the last assignment email."""
    context = mailer.send.call_args[0][2]
    return parse_qs(urlparse(context['accept_link']).query)['token'][0]


class TestCreateTask:
    def test_personal_task(self, service):
        task = service.create_task(4, 'Buy milk')

        assert task.group_id is None
        assert task.owner_id == 4
        assert task.status == TaskStatus.OPEN
        assert task.completion_policy == CompletionPolicy.ALL_ASSIGNEES

    def test_group_task_by_member(self, service):
        task = service.create_task(
            4, 'Book venue', group_id=3, completion_policy=CompletionPolicy.ANY_ASSIGNEE
        )
        assert task.group_id == 3
        assert task.completion_policy == CompletionPolicy.ANY_ASSIGNEE

    def test_group_task_by_outsider(self, service):
        with pytest.raises(NotAMemberError):
            service.create_task(9, 'Sneaky', group_id=3)

    def test_unknown_group(self, service):
        with pytest.raises(GroupNotFoundError):
            service.create_task(1, 'Lost', group_id=99)

    def test_sub_task_on_personal_task_needs_owner(self, service):
        task = service.create_task(4, 'Buy milk')

        with pytest.raises(NotAuthorizedError):
            service.create_sub_task(task.id, 1, 'Check fridge')
        sub_task = service.create_sub_task(task.id, 4, 'Check fridge')
        assert sub_task.task_id == task.id

    def test_sub_task_on_group_task_needs_member(self, service, task_42):
        assert service.create_sub_task(task_42, 4, 'Pick dates').task_id == 42
        with pytest.raises(NotAMemberError):
            service.create_sub_task(task_42, 3, 'Pick dates')

    def test_sub_task_on_missing_task(self, service):
        with pytest.raises(TaskNotFoundError):
            service.create_sub_task(404, 1, 'Nothing')


class TestAssignTask:
    def test_assignment_starts_pending_and_mails_links(self, service, task_42, mailer):
        result = service.assign_task(task_42, 9, 2)

        assert result.assignment.status == AssignmentStatus.PENDING
        assert result.issued_token is not None
        recipient, template, context = mailer.send.call_args[0]
        assert recipient == 'a@b.com'
        assert template == MailTemplate.TASK_ASSIGNMENT
        assert context['task_title'] == 'Plan the offsite'
        token = format_opaque_token(result.issued_token.token_id, result.issued_token.raw_secret)
        assert context['accept_link'] == (
            f'https://todo.example.com/api/tasks/assignments/decide?token={token}&status=ACCEPTED'
        )
        assert context['reject_link'].endswith('&status=REJECTED')

    def test_self_assignment_starts_accepted(self, service, task_42, mailer):
        result = service.assign_task(task_42, 2, 2)

        assert result.assignment.status == AssignmentStatus.ACCEPTED
        assert result.assignment.accepted_at is not None
        assert result.issued_token is None
        mailer.send.assert_not_called()

    def test_without_email(self, service, task_42, mailer):
        result = service.assign_task(task_42, 9, 2, send_email=False)

        assert result.issued_token is None
        mailer.send.assert_not_called()

    def test_member_cannot_assign(self, service, task_42):
        with pytest.raises(NotAuthorizedError):
            service.assign_task(task_42, 9, 4)

    def test_assignee_must_be_member(self, service, task_42):
        with pytest.raises(MemberNotFoundError):
            service.assign_task(task_42, 3, 2)

    def test_personal_task_cannot_be_assigned(self, service):
        task = service.create_task(1, 'Personal')
        with pytest.raises(NotAuthorizedError):
            service.assign_task(task.id, 1, 1)

    def test_closed_task_cannot_be_assigned(self, service, task_42):
        service.close_task(task_42, 1)
        with pytest.raises(InvalidTaskTransitionError):
            service.assign_task(task_42, 9, 2)

    def test_reassignment_replaces_earlier_link(self, service, task_42, mailer):
        service.assign_task(task_42, 9, 2)
        first = _decision_token(mailer)
        service.assign_task(task_42, 9, 1)
        second = _decision_token(mailer)

        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(first, AssignmentStatus.ACCEPTED)
        service.respond_to_assignment_email(second, AssignmentStatus.ACCEPTED)

    def test_self_assignment_revokes_emailed_link(self, service, task_42, mailer, seeded):
        service.assign_task(task_42, 2, 1)
        link_token = _decision_token(mailer)
        service.assign_task(task_42, 2, 2)

        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(link_token, AssignmentStatus.REJECTED)
        assert _assignment_status(seeded, task_42, 2) == AssignmentStatus.ACCEPTED

    def test_email_failure_keeps_assignment(self, service, task_42, mailer, seeded):
        mailer.send.side_effect = RuntimeError('resend down')

        service.assign_task(task_42, 9, 2)

        assert _assignment_status(seeded, task_42, 9) == AssignmentStatus.PENDING


class TestEmailAssignmentResponseScenario:
    """Assignee 9 is PENDING on task 42 and answers from the email."""

    @pytest.fixture
    def token(self, service, task_42, mailer):
        service.assign_task(task_42, 9, 2)
        return _decision_token(mailer)

    def test_accept(self, service, token, seeded):
        response = service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)

        assert response.task_id == 42
        assert response.sub_task_id is None
        assert response.assignee_id == 9
        assert response.status == AssignmentStatus.ACCEPTED
        assert _assignment_status(seeded, 42, 9) == AssignmentStatus.ACCEPTED

    def test_replay_fails(self, service, token, seeded):
        service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)

        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(token, AssignmentStatus.REJECTED)
        assert _assignment_status(seeded, 42, 9) == AssignmentStatus.ACCEPTED

    def test_reject(self, service, token, seeded):
        service.respond_to_assignment_email(token, AssignmentStatus.REJECTED)
        assert _assignment_status(seeded, 42, 9) == AssignmentStatus.REJECTED

    def test_invalid_decision_leaves_link_usable(self, service, token, seeded):
        with pytest.raises(InvalidAssignmentTransitionError):
            service.respond_to_assignment_email(token, AssignmentStatus.COMPLETED)

        with seeded.transaction() as session:
            assert session.query(ActionToken).one().consumed_at is None
        service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)

    def test_already_decided_in_app(self, service, token, seeded):
        service.update_assignment_status(42, 9, AssignmentStatus.ACCEPTED)

        with pytest.raises(InvalidAssignmentTransitionError):
            service.respond_to_assignment_email(token, AssignmentStatus.REJECTED)
        assert _assignment_status(seeded, 42, 9) == AssignmentStatus.ACCEPTED

    def test_link_fails_once_group_is_disbanded(self, service, token, seeded, clock):
        GroupMemberService(unit_of_work=seeded, clock=clock).disband_group(3, 1)

        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)

    def test_unlinked_token_is_not_consumed(self, service, token, seeded):
        with seeded.transaction() as session:
            session.query(ActionToken).one().task_id = None

        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)
        with seeded.transaction() as session:
            assert session.query(ActionToken).one().consumed_at is None

    def test_expired_link(self, service, token, clock):
        clock.advance(timedelta(days=7))
        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(token, AssignmentStatus.ACCEPTED)

    def test_tampered_secret(self, service, token):
        token_id = token.split('.', 1)[0]
        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email(f'{token_id}.forged', AssignmentStatus.ACCEPTED)

    def test_malformed_token(self, service, token):
        with pytest.raises(InvalidTokenError):
            service.respond_to_assignment_email('garbage', AssignmentStatus.ACCEPTED)

    def test_sub_task_response(self, service, task_42, mailer, seeded):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')
        service.assign_sub_task(sub_task.id, 9, 2)

        response = service.respond_to_assignment_email(
            _decision_token(mailer), AssignmentStatus.ACCEPTED
        )

        assert response.sub_task_id == sub_task.id
        assert response.task_id == 42
        with seeded.transaction() as session:
            row = TaskStore.get_sub_task_assignee(session, sub_task.id, 9)
            assert row.status == AssignmentStatus.ACCEPTED


class TestUpdateAssignmentStatus:
    def test_accept_then_complete(self, service, task_42, seeded):
        service.assign_task(task_42, 9, 2, send_email=False)

        service.update_assignment_status(task_42, 9, AssignmentStatus.ACCEPTED)
        done = service.update_assignment_status(task_42, 9, AssignmentStatus.COMPLETED)

        assert done.status == AssignmentStatus.COMPLETED
        assert done.completed_at is not None

    def test_reject_keeps_reason(self, service, task_42):
        service.assign_task(task_42, 9, 2, send_email=False)

        rejected = service.update_assignment_status(
            task_42, 9, AssignmentStatus.REJECTED, reason=' On leave '
        )

        assert rejected.reason == 'On leave'
        assert rejected.rejected_at is not None

    def test_claim_unassigned_task(self, service, task_42):
        claimed = service.update_assignment_status(task_42, 4, AssignmentStatus.ACCEPTED)

        assert claimed.status == AssignmentStatus.ACCEPTED
        assert claimed.assigned_by_id == 4

    def test_claim_needs_accepted(self, service, task_42):
        with pytest.raises(InvalidAssignmentTransitionError):
            service.update_assignment_status(task_42, 4, AssignmentStatus.COMPLETED)

    def test_illegal_transition(self, service, task_42):
        service.assign_task(task_42, 9, 2, send_email=False)
        with pytest.raises(InvalidAssignmentTransitionError):
            service.update_assignment_status(task_42, 9, AssignmentStatus.COMPLETED)

    def test_outsider(self, service, task_42):
        with pytest.raises(NotAMemberError):
            service.update_assignment_status(task_42, 3, AssignmentStatus.ACCEPTED)

    def test_sub_task_claim(self, service, task_42):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')
        claimed = service.update_sub_task_assignment_status(
            sub_task.id, 4, AssignmentStatus.ACCEPTED
        )
        assert claimed.status == AssignmentStatus.ACCEPTED


class TestCloseTask:
    @pytest.fixture
    def half_done(self, service, task_42):
        """Task 42 with assignee 9 COMPLETED and assignee 4 ACCEPTED."""
        service.assign_task(task_42, 9, 2, send_email=False)
        service.update_assignment_status(task_42, 9, AssignmentStatus.ACCEPTED)
        service.update_assignment_status(task_42, 9, AssignmentStatus.COMPLETED)
        service.update_assignment_status(task_42, 4, AssignmentStatus.ACCEPTED)
        return task_42

    def test_policy_blocks_normal_close(self, service, half_done, seeded):
        with pytest.raises(CompletionPolicyNotMetError):
            service.close_task(half_done, 1)
        with seeded.transaction() as session:
            assert TaskStore.get_task(session, half_done).status == TaskStatus.OPEN

    def test_force_close_with_reason(self, service, half_done, clock):
        task = service.close_task(half_done, 2, force=True, reason='Venue cancelled')

        assert task.status == TaskStatus.CLOSED
        assert task.closed_with_open_assignees is True
        assert task.closed_reason == 'Venue cancelled'
        assert task.closed_by_id == 2
        assert task.closed_at == clock.now()

    def test_force_close_without_reason(self, service, half_done):
        with pytest.raises(ForceCloseReasonRequiredError):
            service.close_task(half_done, 1, force=True, reason='  ')

    def test_close_when_all_completed(self, service, task_42):
        service.assign_task(task_42, 9, 2, send_email=False)
        service.update_assignment_status(task_42, 9, AssignmentStatus.ACCEPTED)
        service.update_assignment_status(task_42, 9, AssignmentStatus.COMPLETED)

        task = service.close_task(task_42, 1)

        assert task.status == TaskStatus.CLOSED
        assert task.closed_with_open_assignees is False

    def test_rejected_assignee_blocks_normal_close(self, service, task_42):
        service.assign_task(task_42, 9, 2, send_email=False)
        service.update_assignment_status(
            task_42, 9, AssignmentStatus.REJECTED, reason='On leave'
        )

        with pytest.raises(CompletionPolicyNotMetError):
            service.close_task(task_42, 1)

        task = service.close_task(task_42, 1, force=True, reason='Handled without Ann')
        assert task.closed_with_open_assignees is True

    def test_member_cannot_close_group_task(self, service, task_42):
        with pytest.raises(NotAuthorizedError):
            service.close_task(task_42, 4)

    def test_only_owner_closes_personal_task(self, service):
        task = service.create_task(4, 'Buy milk')

        with pytest.raises(NotAuthorizedError):
            service.close_task(task.id, 1)
        assert service.close_task(task.id, 4).status == TaskStatus.CLOSED

    def test_closing_twice_fails(self, service, task_42):
        service.close_task(task_42, 1)
        with pytest.raises(InvalidTaskTransitionError):
            service.close_task(task_42, 1)

    def test_missing_task(self, service):
        with pytest.raises(TaskNotFoundError):
            service.close_task(404, 1)

    def test_open_sub_tasks_need_force_and_are_closed(self, service, task_42, seeded):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')

        with pytest.raises(CompletionPolicyNotMetError):
            service.close_task(task_42, 1)

        task = service.close_task(task_42, 1, force=True, reason='Out of budget')

        assert task.closed_with_open_assignees is False
        with seeded.transaction() as session:
            closed = session.get(SubTask, sub_task.id)
            assert closed.status == TaskStatus.CLOSED
            assert closed.closed_reason == 'Out of budget'


class TestCloseSubTask:
    def test_sub_task_policy(self, service, task_42):
        sub_task = service.create_sub_task(
            task_42, 2, 'Book rooms', completion_policy=CompletionPolicy.ANY_ASSIGNEE
        )
        service.assign_sub_task(sub_task.id, 9, 2, send_email=False)

        with pytest.raises(CompletionPolicyNotMetError):
            service.close_sub_task(sub_task.id, 2)

        service.update_sub_task_assignment_status(sub_task.id, 9, AssignmentStatus.ACCEPTED)
        service.update_sub_task_assignment_status(sub_task.id, 9, AssignmentStatus.COMPLETED)
        closed = service.close_sub_task(sub_task.id, 2)

        assert closed.status == TaskStatus.CLOSED

    def test_member_cannot_close_sub_task(self, service, task_42):
        sub_task = service.create_sub_task(task_42, 4, 'Book rooms')
        with pytest.raises(NotAuthorizedError):
            service.close_sub_task(sub_task.id, 4)


class TestArchiveTask:
    def test_archive_closed_task_and_sub_tasks(self, service, task_42, seeded):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')
        service.close_task(task_42, 1, force=True, reason='Done enough')

        task = service.archive_task(task_42, 1)

        assert task.status == TaskStatus.ARCHIVED
        with seeded.transaction() as session:
            assert session.get(SubTask, sub_task.id).status == TaskStatus.ARCHIVED

    def test_open_task_cannot_be_archived(self, service, task_42):
        with pytest.raises(InvalidTaskTransitionError):
            service.archive_task(task_42, 1)

    def test_archived_task_is_final(self, service, task_42):
        service.close_task(task_42, 1)
        service.archive_task(task_42, 1)
        with pytest.raises(InvalidTaskTransitionError):
            service.archive_task(task_42, 1)


class TestGetTask:
    def test_member_sees_assignees_and_sub_tasks(self, service, task_42):
        service.assign_task(task_42, 9, 2, send_email=False)
        sub_task = service.create_sub_task(task_42, 4, 'Book rooms')

        detail = service.get_task(task_42, 4)

        assert detail.task.title == 'Plan the offsite'
        assert [(a.assignee_id, a.status) for a in detail.assignees] == [
            (9, AssignmentStatus.PENDING)
        ]
        assert [s.id for s in detail.sub_tasks] == [sub_task.id]
        assert detail.can_manage is False

    def test_admin_can_manage(self, service, task_42):
        assert service.get_task(task_42, 2).can_manage is True

    def test_outsider(self, service, task_42):
        with pytest.raises(NotAMemberError):
            service.get_task(task_42, 3)

    def test_personal_task_is_hidden_from_others(self, service):
        task = service.create_task(4, 'Buy milk')

        with pytest.raises(TaskNotFoundError):
            service.get_task(task.id, 1)
        assert service.get_task(task.id, 4).can_manage is True

    def test_sub_task(self, service, task_42):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')
        service.assign_sub_task(sub_task.id, 4, 2, send_email=False)

        detail = service.get_sub_task(sub_task.id, 9)

        assert detail.sub_task.title == 'Book rooms'
        assert [a.assignee_id for a in detail.assignees] == [4]

    def test_missing_sub_task(self, service):
        with pytest.raises(TaskNotFoundError):
            service.get_sub_task(404, 1)


class TestUpdateTask:
    def test_admin_edits_fields(self, service, task_42, clock):
        clock.advance(timedelta(minutes=5))

        task = service.update_task(
            task_42, 2, {'title': 'Plan the retreat', 'priority': 1, 'description': 'Spring'}
        )

        assert (task.title, task.priority, task.description) == ('Plan the retreat', 1, 'Spring')
        assert task.updated_at == clock.now()

    def test_omitted_fields_stay(self, service, task_42):
        task = service.update_task(task_42, 1, {'priority': 4})

        assert task.title == 'Plan the offsite'
        assert task.priority == 4

    def test_description_can_be_cleared(self, service, task_42):
        service.update_task(task_42, 1, {'description': 'Spring'})
        assert service.update_task(task_42, 1, {'description': None}).description is None

    def test_creator_edits_own_group_task(self, service, task_42):
        task = service.create_task(4, 'Bring snacks', group_id=3)
        assert service.update_task(task.id, 4, {'title': 'Bring drinks'}).title == 'Bring drinks'

    def test_member_cannot_edit_others_task(self, service, task_42):
        with pytest.raises(NotAuthorizedError):
            service.update_task(task_42, 4, {'title': 'Mine now'})

    def test_only_owner_edits_personal_task(self, service):
        task = service.create_task(4, 'Buy milk')
        with pytest.raises(NotAuthorizedError):
            service.update_task(task.id, 1, {'title': 'Buy bread'})

    def test_closed_task_can_be_edited(self, service, task_42):
        service.close_task(task_42, 1)
        assert service.update_task(task_42, 1, {'priority': 1}).priority == 1

    def test_archived_task_is_immutable(self, service, task_42, seeded):
        service.close_task(task_42, 1)
        service.archive_task(task_42, 1)

        with pytest.raises(InvalidTaskTransitionError):
            service.update_task(task_42, 1, {'title': 'Too late'})
        with seeded.transaction() as session:
            assert TaskStore.get_task(session, task_42).title == 'Plan the offsite'

    def test_sub_task_edit(self, service, task_42):
        sub_task = service.create_sub_task(task_42, 4, 'Book rooms')

        updated = service.update_sub_task(sub_task.id, 2, {'title': 'Book two rooms'})

        assert updated.title == 'Book two rooms'

    def test_archived_sub_task_is_immutable(self, service, task_42):
        sub_task = service.create_sub_task(task_42, 2, 'Book rooms')
        service.close_task(task_42, 1, force=True, reason='Done enough')
        service.archive_task(task_42, 1)

        with pytest.raises(InvalidTaskTransitionError):
            service.update_sub_task(sub_task.id, 1, {'title': 'Too late'})
