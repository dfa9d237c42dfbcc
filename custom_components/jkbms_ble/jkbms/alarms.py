"""System alarm codes reported by JK BMS cell info frames."""

from dataclasses import dataclass
from typing import Dict

UNKNOWN_ALARM_LABEL = "Unknown alarm code"

ALARM_LABELS: Dict[int, str] = {
    0: "No alarm",
    1: "Charge overtemperature",
    2: "Charge undertemperature",
    8: "Cell Undervoltage",
    1024: "Cell count is not equal to settings",
    1032: "Cell Undervoltage+",
    2048: "Current sensor anomaly",
    4096: "Cell Over Voltage",
    5120: "Cell Over Voltage+",
}


@dataclass(frozen=True)
class AlarmCondition:
    code: int
    label: str

    @property
    def active(self) -> bool:
        return self.code != 0

    @property
    def known(self) -> bool:
        return self.code in ALARM_LABELS


def resolve_alarm(code: int) -> AlarmCondition:
    """Map a raw alarm code to its label; unknown codes keep the raw value."""
    return AlarmCondition(code=code, label=ALARM_LABELS.get(code, UNKNOWN_ALARM_LABEL))


__all__ = [
    "ALARM_LABELS",
    "UNKNOWN_ALARM_LABEL",
    "AlarmCondition",
    "resolve_alarm",
]
