"""Provider name -> connector lookup."""

import logging

from shared.errors import ValidationError

from ..config import Settings
from .base import CalendarConnector
from .google import GoogleConnector
from .outlook import OutlookConnector

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Holds one connector per provider for the process lifetime."""

    def __init__(self, connectors: dict[str, CalendarConnector], default: str = "google"):
        self.connectors = connectors
        self.default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectorRegistry":
        connectors: dict[str, CalendarConnector] = {
            "google": GoogleConnector.from_settings(settings),
            "outlook": OutlookConnector.from_settings(settings),
        }
        logger.info(
            f"[CALENDAR] Connectors ready (default={settings.DEFAULT_CALENDAR_PROVIDER}, "
            f"outlook mode={settings.MICROSOFT_AUTH_MODE})"
        )
        return cls(connectors, default=settings.DEFAULT_CALENDAR_PROVIDER)

    @property
    def providers(self) -> list[str]:
        return list(self.connectors)

    def get(self, provider: str | None = None) -> CalendarConnector:
        """Return the connector for ``provider`` (default when empty).

        Raises:
            ValidationError: For an unknown provider name.
        """
        name = (provider or self.default).strip().lower()
        connector = self.connectors.get(name)
        if connector is None:
            choices = " or ".join(f'"{p}"' for p in self.connectors)
            raise ValidationError(f"Invalid provider. Must be {choices}", details={"provider": provider})
        return connector

    def for_state(self, state: str | None) -> CalendarConnector | None:
        """Find the connector that issued an OAuth ``state`` value."""
        for connector in self.connectors.values():
            if connector.owns_state(state):
                return connector
        return None

    async def close(self) -> None:
        for connector in self.connectors.values():
            close = getattr(connector, "close", None)
            if close is not None:
                await close()
