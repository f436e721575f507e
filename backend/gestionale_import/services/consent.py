"""Consent values stamped on customers created by a bulk import.

Imported customers are recorded with privacy and marketing consent granted
unless configured otherwise. Changing the defaults needs product sign-off.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from gestionale_import.core.config import Settings


@dataclass(frozen=True)
class ConsentPolicy:
    privacy: bool = True
    marketing: bool = True
    stamp_timestamp: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConsentPolicy":
        return cls(
            privacy=settings.import_consent_privacy,
            marketing=settings.import_consent_marketing,
        )

    def columns(self, now: datetime) -> dict[str, object]:
        values: dict[str, object] = {
            "consenso_privacy": 1 if self.privacy else 0,
            "consenso_marketing": 1 if self.marketing else 0,
        }
        if self.stamp_timestamp and (self.privacy or self.marketing):
            values["data_consenso"] = now.isoformat()
        return values


DEFAULT_CONSENT = ConsentPolicy()
