"""Tests for the issue / verify-and-consume token protocol."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from grouptodo.server.errors import InvalidTokenError
from grouptodo.server.services.action_token_service import (
    IssuedToken,
    format_opaque_token,
    group_invite_subject,
    parse_opaque_token,
    reset_password_subject,
    sub_task_assignment_subject,
    task_assignment_subject,
)
from grouptodo.storage.action_token import ActionToken, ActionTokenType
from grouptodo.storage.action_token_store import ActionTokenStore

TTL = timedelta(minutes=15)


@pytest.fixture
def issued(seeded, action_tokens):
    with seeded.transaction() as session:
        return action_tokens.issue(
            session,
            ActionTokenType.RESET_PASSWORD,
            reset_password_subject(4),
            TTL,
            issued_by_id=4,
            user_id=4,
        )


class TestSubjectKeys:
    def test_reset_password_subject(self):
        assert reset_password_subject(7) == 'RESET_PASSWORD:user:7'

    def test_group_invite_subject_lowercases_email(self):
        assert group_invite_subject(3, 'A@B.com') == 'GROUP_INVITE:group:3|email:a@b.com'

    def test_task_assignment_subjects(self):
        assert task_assignment_subject(42, 9) == 'TASK_ASSIGNMENT:task:42|assignee:9'
        assert sub_task_assignment_subject(5, 9) == 'TASK_ASSIGNMENT:subtask:5|assignee:9'


class TestOpaqueToken:
    def test_round_trip(self):
        assert parse_opaque_token(format_opaque_token(12, 'abc-_DEF')) == (12, 'abc-_DEF')

    @pytest.mark.parametrize('value', ['', '12', '12.', '.abc', 'x.abc', '-1.abc', None])
    def test_malformed_values_are_invalid_tokens(self, value):
        with pytest.raises(InvalidTokenError):
            parse_opaque_token(value)


class TestIssue:
    def test_stores_hash_not_secret(self, seeded, issued, codec):
        with seeded.transaction() as session:
            row = session.get(ActionToken, issued.token_id)
            assert row.token_hash == codec.derive_hash(issued.raw_secret)
            assert issued.raw_secret not in row.token_hash

    def test_expiry_uses_clock(self, issued, clock):
        assert issued.expires_at == clock.now() + TTL

    def test_raw_secret_is_not_in_repr(self, issued):
        assert issued.raw_secret not in repr(issued)
        assert isinstance(issued, IssuedToken)

    def test_reissue_invalidates_earlier_secret(self, seeded, issued, action_tokens):
        with seeded.transaction() as session:
            second = action_tokens.issue(
                session, ActionTokenType.RESET_PASSWORD, reset_password_subject(4), TTL
            )
        assert second.token_id == issued.token_id

        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )
        with seeded.transaction() as session:
            action_tokens.verify_and_consume(
                session, ActionTokenType.RESET_PASSWORD, second.token_id, second.raw_secret
            )


class TestVerifyAndConsume:
    def test_success_marks_consumed(self, seeded, issued, action_tokens, clock):
        with seeded.transaction() as session:
            token = action_tokens.verify_and_consume(
                session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
            )
            assert token.user_id == 4

        with seeded.transaction() as session:
            assert session.get(ActionToken, issued.token_id).consumed_at == clock.now()

    def test_second_use_fails(self, seeded, issued, action_tokens):
        with seeded.transaction() as session:
            action_tokens.verify_and_consume(
                session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
            )

        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )

    def test_wrong_secret_fails_like_missing_token(self, seeded, issued, action_tokens):
        with pytest.raises(InvalidTokenError) as wrong_secret:
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, 'guess'
                )
        with pytest.raises(InvalidTokenError) as missing:
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, 999, issued.raw_secret
                )
        assert str(wrong_secret.value) == str(missing.value)

    def test_wrong_type_fails(self, seeded, issued, action_tokens):
        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.GROUP_INVITE, issued.token_id, issued.raw_secret
                )

    def test_expired_token_fails_with_correct_secret(self, seeded, issued, action_tokens, clock):
        clock.advance(TTL)
        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )

    def test_lost_race_fails(self, seeded, issued, action_tokens):
        """A concurrent request consumed the token between lookup and update."""
        with (
            patch.object(ActionTokenStore, 'consume', return_value=0),
            pytest.raises(InvalidTokenError),
        ):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )

    def test_second_conditional_update_matches_nothing(self, seeded, issued, action_tokens, clock):
        with seeded.transaction() as session:
            # Both requests pass the lookup before either consumes.
            first = action_tokens.check(
                session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
            )
            second = action_tokens.check(
                session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
            )
            counts = [
                ActionTokenStore.consume(session, token.id, clock.now())
                for token in (first, second)
            ]
        assert counts == [1, 0]

    def test_consumed_after_lookup_fails(self, seeded, issued, action_tokens, clock):
        """Another request consumes the token after this one's lookup."""
        real_check = action_tokens.check

        def rival_consumes_after_check(session, *args):
            token = real_check(session, *args)
            assert ActionTokenStore.consume(session, token.id, clock.now()) == 1
            return token

        with (
            patch.object(action_tokens, 'check', side_effect=rival_consumes_after_check),
            pytest.raises(InvalidTokenError),
        ):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )

    def test_user_predicate(self, seeded, issued, action_tokens):
        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.verify_and_consume(
                    session,
                    ActionTokenType.RESET_PASSWORD,
                    issued.token_id,
                    issued.raw_secret,
                    user_id=1,
                )


class TestCheckAndRevoke:
    def test_check_does_not_consume(self, seeded, issued, action_tokens):
        with seeded.transaction() as session:
            action_tokens.check(
                session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
            )
        with seeded.transaction() as session:
            assert session.get(ActionToken, issued.token_id).consumed_at is None

    def test_revoked_token_fails(self, seeded, issued, action_tokens):
        with seeded.transaction() as session:
            assert action_tokens.revoke(session, reset_password_subject(4))

        with pytest.raises(InvalidTokenError):
            with seeded.transaction() as session:
                action_tokens.check(
                    session, ActionTokenType.RESET_PASSWORD, issued.token_id, issued.raw_secret
                )
