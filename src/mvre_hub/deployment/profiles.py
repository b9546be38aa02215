"""Deployment profiles.

A profile is a named bundle of rendering defaults. Only the materializer
reads ProfileSettings; nothing else branches on the profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Profile(Enum):
    """Deployment profile."""

    STANDARD = "standard"
    PRODUCTION = "production"


class DatabaseBackend(Enum):
    """Hub database backend."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


@dataclass(frozen=True)
class ProfileSettings:
    """Rendering settings for one profile."""

    profile: Profile
    database: DatabaseBackend
    cpu_limit: str | None = None
    mem_limit: str | None = None
    cull_timeout: int | None = None
    cull_every: int | None = None
    db_user: str = ""
    db_name: str = ""
    db_host: str = ""
    db_port: int = 5432
    postgres_image: str = "postgres:15"

    @property
    def uses_postgres(self) -> bool:
        return self.database == DatabaseBackend.POSTGRESQL

    @property
    def culling_enabled(self) -> bool:
        return self.cull_timeout is not None


STANDARD = ProfileSettings(
    profile=Profile.STANDARD,
    database=DatabaseBackend.SQLITE,
)

PRODUCTION = ProfileSettings(
    profile=Profile.PRODUCTION,
    database=DatabaseBackend.POSTGRESQL,
    cpu_limit="2",
    mem_limit="4G",
    cull_timeout=3600,
    cull_every=300,
    db_user="mvre",
    db_name="mvre_hub",
    db_host="postgres",
)

_SETTINGS = {
    Profile.STANDARD: STANDARD,
    Profile.PRODUCTION: PRODUCTION,
}


def profile_settings(profile: Profile | str) -> ProfileSettings:
    """Get the settings for a profile.

    Args:
        profile: Profile or its value ("standard", "production")

    Raises:
        ValueError: If the profile name is unknown.
    """
    return _SETTINGS[Profile(profile)]
