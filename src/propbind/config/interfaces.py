from __future__ import annotations

from typing import Protocol

from propbind.config.models import PropbindSettings, SettingsLoadRequest


class SettingsLoader(Protocol):
    """
    Loads effective propbind settings.

    Precedence, lowest first: model defaults, YAML file, environment variables
    named <env_prefix><SECTION>__<FIELD>.
    """

    async def load(self, request: SettingsLoadRequest = SettingsLoadRequest()) -> PropbindSettings:
        ...
