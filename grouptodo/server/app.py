"""Composition root: builds the services and the FastAPI application."""

from typing import Optional

from fastapi import FastAPI
from sqlalchemy import Engine

from grouptodo.core.clock import Clock, SystemClock
from grouptodo.core.config import GroupTodoConfig, get_config
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.token_codec import TokenCodec
from grouptodo.server.routes.auth import auth_router
from grouptodo.server.routes.error_responses import register_error_handlers
from grouptodo.server.routes.group_invitations import accept_router, invitation_router
from grouptodo.server.routes.groups import groups_router
from grouptodo.server.routes.tasks import tasks_router
from grouptodo.server.services.action_token_service import ActionTokenService
from grouptodo.server.services.email_service import Mailer, ResendMailer
from grouptodo.server.services.group_invitation_service import GroupInvitationService
from grouptodo.server.services.group_member_service import GroupMemberService
from grouptodo.server.services.password_reset_service import PasswordResetService
from grouptodo.server.services.task_service import TaskService
from grouptodo.storage.database import (
    UnitOfWork,
    create_db_engine,
    create_session_maker,
    init_db,
)


def create_app(
    config: Optional[GroupTodoConfig] = None,
    *,
    engine: Optional[Engine] = None,
    mailer: Optional[Mailer] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Wire the services together and mount the routers.

    Args:
        config: Settings; read from the environment when omitted
        engine: Database engine; created from ``config.database_url`` when omitted
        mailer: Mail transport; Resend when omitted
        clock: Time source; the system clock when omitted
    """
    config = config or get_config()
    clock = clock or SystemClock()
    if engine is None:
        engine = create_db_engine(config.database_url)
    init_db(engine)

    unit_of_work = UnitOfWork(create_session_maker(engine))
    mailer = mailer or ResendMailer(config)
    action_tokens = ActionTokenService(
        codec=TokenCodec(config.token_hmac_secret.get_secret_value()),
        clock=clock,
        secret_bytes=config.token_secret_bytes,
    )

    app = FastAPI(title='GroupTodo')
    app.state.password_reset_service = PasswordResetService(
        unit_of_work=unit_of_work,
        action_tokens=action_tokens,
        mailer=mailer,
        config=config,
        clock=clock,
    )
    app.state.group_invitation_service = GroupInvitationService(
        unit_of_work=unit_of_work,
        action_tokens=action_tokens,
        mailer=mailer,
        config=config,
        clock=clock,
    )
    app.state.group_member_service = GroupMemberService(unit_of_work=unit_of_work, clock=clock)
    app.state.task_service = TaskService(
        unit_of_work=unit_of_work,
        action_tokens=action_tokens,
        mailer=mailer,
        config=config,
        clock=clock,
    )

    app.include_router(auth_router)
    app.include_router(groups_router)
    app.include_router(invitation_router)
    app.include_router(accept_router)
    app.include_router(tasks_router)
    register_error_handlers(app)

    logger.info('GroupTodo app created', extra={'web_host': config.web_host})
    return app
