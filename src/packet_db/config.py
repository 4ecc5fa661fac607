"""Database settings for the SQL job store.

``DATABASE_URL`` wins when set; otherwise the URL is assembled from
``PG_HOST`` / ``PG_PORT`` / ``PG_USER`` / ``PG_PASSWORD`` / ``PG_DATABASE``.
Alembic needs a libpq URL, the runtime engine an asyncpg one; both come
from the same settings object.
"""

import os
from dataclasses import dataclass

_ASYNC_PREFIX = "postgresql+asyncpg://"
_SYNC_PREFIX = "postgresql://"


@dataclass(frozen=True)
class DatabaseSettings:
    url: str

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        url = os.getenv("DATABASE_URL")
        if not url:
            user = os.getenv("PG_USER", "packetgen")
            password = os.getenv("PG_PASSWORD", "packetgen")
            host = os.getenv("PG_HOST", "localhost")
            port = os.getenv("PG_PORT", "5432")
            database = os.getenv("PG_DATABASE", "packetgen")
            url = f"{_SYNC_PREFIX}{user}:{password}@{host}:{port}/{database}"
        return cls(url=url)

    @property
    def sync_url(self) -> str:
        return self.url.replace(_ASYNC_PREFIX, _SYNC_PREFIX, 1)

    @property
    def async_url(self) -> str:
        if self.url.startswith(_SYNC_PREFIX):
            return _ASYNC_PREFIX + self.url[len(_SYNC_PREFIX):]
        return self.url

    @property
    def redacted(self) -> str:
        """URL with the password masked, for log lines."""
        scheme, sep, rest = self.url.partition("://")
        creds, at, location = rest.rpartition("@")
        if not at or ":" not in creds:
            return self.url
        user = creds.split(":", 1)[0]
        return f"{scheme}{sep}{user}:***@{location}"
