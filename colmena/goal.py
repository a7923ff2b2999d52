"""Deployment goals."""

from __future__ import annotations

from enum import Enum

_PARSE_ERROR = "Not one of [build, push, switch, boot, test, dry-activate, keys]."

_SUCCESS = {
    "build": "Configuration built",
    "push": "Pushed",
    "switch": "Activation successful",
    "boot": "Will be activated next boot",
    "test": "Activation successful (test)",
    "dry-activate": "Dry activation successful",
    "keys": "Uploaded keys",
}


class Goal(str, Enum):
    """The goal of a deployment. SWITCH is the usual default."""

    BUILD = "build"
    PUSH = "push"
    SWITCH = "switch"
    BOOT = "boot"
    TEST = "test"
    DRY_ACTIVATE = "dry-activate"
    UPLOAD_KEYS = "keys"

    def __str__(self) -> str:
        return self.value

    def activation_goal(self) -> str | None:
        """The argument for switch-to-configuration, or None if there is none."""
        if self in (Goal.BUILD, Goal.PUSH):
            return None
        return self.value

    def success_str(self) -> str:
        return _SUCCESS[self.value]

    def should_switch_profile(self) -> bool:
        return self in (Goal.BOOT, Goal.SWITCH)

    def requires_activation(self) -> bool:
        return self not in (Goal.BUILD, Goal.UPLOAD_KEYS, Goal.PUSH)

    def persists_after_reboot(self) -> bool:
        return self in (Goal.SWITCH, Goal.BOOT)

    def requires_target_host(self) -> bool:
        return self is not Goal.BUILD


def parse_goal(value: str) -> Goal:
    """Parse a goal name as given on the command line."""
    try:
        return Goal(value)
    except ValueError:
        raise ValueError(_PARSE_ERROR) from None