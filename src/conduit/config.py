import logging
import os
from typing import Any

from pydantic import BaseModel

_ENV_PREFIX = "CONDUIT_"


class ConduitSettings(BaseModel):
    """
    Start-up settings for Conduit.

    Attributes:
        database_url: SQLAlchemy URL of the default database. Nothing is registered
            when it is None.
        echo: Log every statement SQLAlchemy sends (``create_engine(echo=...)``).
        pool_pre_ping: Test pooled connections before handing them out.
        log_level: Level for the ``conduit`` logger.
    """

    database_url: str | None = None
    echo: bool = False
    pool_pre_ping: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ConduitSettings":
        """Read ``CONDUIT_*`` variables, e.g. ``CONDUIT_DATABASE_URL``."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            env_name = f"{_ENV_PREFIX}{name.upper()}"
            if env_name in environ:
                values[name] = environ[env_name]
        return cls.model_validate(values)


def configure(settings: ConduitSettings | None = None) -> ConduitSettings:
    """
    Apply settings: set the log level and, if a URL is given, register the default
    connection and check that resolution works.
    """
    from .connection import connect, validate_configuration

    settings = settings or ConduitSettings.from_env()
    logging.getLogger("conduit").setLevel(settings.log_level.upper())
    if settings.database_url:
        connect(
            settings.database_url,
            echo=settings.echo,
            pool_pre_ping=settings.pool_pre_ping,
        )
        validate_configuration()
    return settings
