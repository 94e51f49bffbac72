"""Named connection profiles."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from invoicer.core.schema import Profile

logger = logging.getLogger("invoicer.profiles")


class ProfileRepository(Protocol):
    """Read access to the stored connection profiles."""

    def load_named_profiles(self) -> list[Profile]: ...

    def find(self, profile_name: str) -> Profile | None: ...


class JsonProfileRepository:
    """Profiles stored as a JSON array in a single file.

    The file is re-read on every call so edits made by the profile editor are
    picked up without a restart.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    def load_named_profiles(self) -> list[Profile]:
        if not self._path.exists():
            return []
        with self._path.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)
        if not isinstance(raw, list):
            raise ValueError(f"{self._path} must contain a JSON array of profiles")

        profiles: list[Profile] = []
        for index, entry in enumerate(raw):
            try:
                profiles.append(Profile.model_validate(entry))
            except ValidationError as exc:
                logger.warning("profile_skipped path=%s index=%s errors=%s", self._path, index, exc.errors())
        return profiles

    def find(self, profile_name: str) -> Profile | None:
        for profile in self.load_named_profiles():
            if profile.profile_name == profile_name:
                return profile
        return None


class InMemoryProfileRepository:
    """Fixed profile list for tests and embedded use."""

    def __init__(self, profiles: list[Profile] | None = None) -> None:
        self._profiles = list(profiles or [])

    def load_named_profiles(self) -> list[Profile]:
        return list(self._profiles)

    def find(self, profile_name: str) -> Profile | None:
        return next((p for p in self._profiles if p.profile_name == profile_name), None)
