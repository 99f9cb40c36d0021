"""Email delivery for transactional mail via Resend."""

from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Any, Protocol

import resend

from grouptodo.core.config import GroupTodoConfig
from grouptodo.core.logger import grouptodo_logger as logger


class MailTemplate(str, Enum):
    RESET_PASSWORD = 'reset_password'
    GROUP_INVITE = 'group_invite'
    TASK_ASSIGNMENT = 'task_assignment'


class Mailer(Protocol):
    def send(self, recipient: str, template: MailTemplate, context: dict[str, Any]) -> bool:
        """Deliver one message; returns True if the transport accepted it."""
        ...


_BUTTON_STYLE = (
    'background-color: #2f6fed; color: #ffffff; padding: 8px 16px; '
    'text-decoration: none; border-radius: 8px; display: inline-block; '
    'font-size: 14px; font-weight: 600;'
)


def _button(url: str, label: str) -> str:
    return f'<a href="{escape(url)}" style="{_BUTTON_STYLE}">{label}</a>'


def _wrap(body: str) -> str:
    return f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                {body}

                <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">

                <p style="color: #999; font-size: 12px;">
                    Best,<br>
                    The GroupTodo Team
                </p>
            </div>
            """


def _render_reset_password(context: dict[str, Any]) -> tuple[str, str]:
    link = context['link']
    body = f"""
                <p>Hi {escape(context.get('name') or 'there')},</p>

                <p>We received a request to reset your GroupTodo password.</p>

                <p style="margin: 30px 0;">{_button(link, 'Reset Password')}</p>

                <p style="color: #666; font-size: 14px;">
                    This link will expire in {context.get('expires_in_minutes', 15)} minutes
                    and can only be used once.
                </p>

                <p style="color: #666; font-size: 14px;">
                    If you didn't ask for this, you can safely ignore this email.
                </p>
    """
    return 'Password Reset', _wrap(body)


def _render_group_invite(context: dict[str, Any]) -> tuple[str, str]:
    link = context['link']
    group_name = escape(context['group_name'])
    body = f"""
                <p>Hi,</p>

                <p><strong>{escape(context.get('inviter_name') or 'A team member')}</strong> has
                invited you to join <strong>{group_name}</strong> on GroupTodo.</p>

                <p style="margin: 30px 0;">{_button(link, 'Accept Invitation')}</p>

                <p style="color: #666; font-size: 14px;">
                    Or copy and paste this link into your browser:<br>
                    <a href="{escape(link)}">{escape(link)}</a>
                </p>

                <p style="color: #666; font-size: 14px;">
                    This invitation will expire in {context.get('expires_in_days', 3)} days.
                </p>
    """
    return f"You're invited to join {context['group_name']} on GroupTodo", _wrap(body)


def _render_task_assignment(context: dict[str, Any]) -> tuple[str, str]:
    task_title = escape(context['task_title'])
    body = f"""
                <p>Hi,</p>

                <p><strong>{escape(context.get('assigner_name') or 'A team member')}</strong>
                assigned you to <strong>{task_title}</strong>.</p>

                <p style="margin: 30px 0;">
                    {_button(context['accept_link'], 'Accept')}
                    &nbsp;
                    {_button(context['reject_link'], 'Reject')}
                </p>

                <p style="color: #666; font-size: 14px;">
                    You can answer once; the links stop working after that.
                </p>
    """
    return f"New assignment: {context['task_title']}", _wrap(body)


_RENDERERS = {
    MailTemplate.RESET_PASSWORD: _render_reset_password,
    MailTemplate.GROUP_INVITE: _render_group_invite,
    MailTemplate.TASK_ASSIGNMENT: _render_task_assignment,
}


def render_template(template: MailTemplate, context: dict[str, Any]) -> tuple[str, str]:
    """Render a template into (subject, html)."""
    return _RENDERERS[template](context)


@dataclass
class ResendMailer:
    """Mailer that sends through the Resend API."""

    config: GroupTodoConfig

    def _get_resend_client(self) -> bool:
        """Configure the Resend client.

        Returns:
            bool: True if client is ready, False otherwise
        """
        if self.config.resend_api_key is None:
            logger.warning('RESEND_API_KEY not configured, skipping email')
            return False

        resend.api_key = self.config.resend_api_key.get_secret_value()
        return True

    def send(self, recipient: str, template: MailTemplate, context: dict[str, Any]) -> bool:
        if not self._get_resend_client():
            return False

        subject, html = render_template(template, context)
        params = {
            'from': self.config.resend_from_email,
            'to': [recipient],
            'subject': subject,
            'html': html,
        }

        response = resend.Emails.send(params)
        logger.info(
            'Email sent',
            extra={
                'template': template.value,
                'email': recipient,
                'response_id': response.get('id') if response else None,
            },
        )
        return True


def send_best_effort(
    mailer: Mailer, recipient: str, template: MailTemplate, context: dict[str, Any]
) -> bool:
    """Send mail after the domain change has committed.

    Transport failures are logged and reported as False; they never undo the
    committed change.
    """
    try:
        return mailer.send(recipient, template, context)
    except Exception as e:
        logger.error(
            'Failed to send email',
            extra={'template': template.value, 'email': recipient, 'error': str(e)},
        )
        return False
