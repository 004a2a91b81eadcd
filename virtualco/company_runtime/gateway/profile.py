"""Active credential profile.

Profiles are owned by an external collaborator (profile CRUD is not part of
the runtime).  The gateway only reads the active one through a
``ProfileProvider``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from virtualco.company_runtime.settings import VirtualCoSettings


class Profile(BaseModel):
    name: str
    url: str | None = None
    api_key: str | None = None


@runtime_checkable
class ProfileProvider(Protocol):
    def get_active_profile(self) -> Profile | None: ...


class StaticProfileProvider:
    """Serves a fixed profile (tests, embedding)."""

    def __init__(self, profile: Profile | None = None) -> None:
        self._profile = profile

    def get_active_profile(self) -> Profile | None:
        return self._profile


class SettingsProfileProvider:
    """Builds the active profile from ``VIRTUALCO_PROFILE_*`` settings.

    Returns ``None`` when neither a URL nor a key is configured, so the
    gateway falls back to the provider environment variables.
    """

    def __init__(self, settings: VirtualCoSettings) -> None:
        self._settings = settings

    def get_active_profile(self) -> Profile | None:
        url = self._settings.profile_url
        key = self._settings.profile_api_key.get_secret_value() if self._settings.profile_api_key else None
        if not url and not key:
            return None
        return Profile(name=self._settings.profile_name, url=url, api_key=key)
