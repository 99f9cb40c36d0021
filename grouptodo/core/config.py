"""Application configuration read from the environment."""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FROM_EMAIL = 'GroupTodo <no-reply@grouptodo.app>'
DEFAULT_WEB_HOST = 'http://localhost:3000'


class GroupTodoConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    database_url: str = 'sqlite:///./grouptodo.db'

    # HMAC key for action-token hashes. Rotating it invalidates every
    # outstanding link.
    token_hmac_secret: SecretStr
    jwt_secret: SecretStr
    jwt_algorithm: str = 'HS256'

    web_host: str = DEFAULT_WEB_HOST

    reset_password_token_ttl: timedelta = timedelta(minutes=15)
    group_invite_token_ttl: timedelta = timedelta(days=3)
    task_assignment_token_ttl: timedelta = timedelta(days=7)
    reset_password_access_ttl: timedelta = timedelta(minutes=15)
    token_secret_bytes: int = Field(default=32, ge=16)

    resend_api_key: SecretStr | None = None
    resend_from_email: str = DEFAULT_FROM_EMAIL

    def build_url(self, path: str) -> str:
        return f'{self.web_host.rstrip("/")}/{path.lstrip("/")}'


@lru_cache
def get_config() -> GroupTodoConfig:
    return GroupTodoConfig()  # type: ignore[call-arg]
