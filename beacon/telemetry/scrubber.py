"""Allowlist scrubbing for every string that ends up in a telemetry record."""

from __future__ import annotations

import enum
import re
from typing import Any, Mapping

from beacon.telemetry.allowlists import AllowlistSet, default_allowlists

# Use "anonymous" as the string to return when you can't report a name
ANONYMOUS = "anonymous"

# Use "0.0" as the string for an anonymous module version
ANONYMOUS_VERSION = "0.0"

# Use "n/a" as the string when there's no tag to report
NO_TAG = "n/a"

# Report the platform name information as "na"
NOT_AVAILABLE = "na"

# Context fields that transports fill in from the local machine.
PLATFORM_FIELDS = (
    "ai.cloud.role",
    "ai.cloud.roleInstance",
    "ai.internal.nodeName",
    "ai.device.id",
    "host.name",
    "host.id",
    "service.instance.id",
    "process.owner",
)

_VERSION_RE = re.compile(r"[0-9]{1,9}(\.[0-9]{1,9}){0,3}")


class ScrubCategory(str, enum.Enum):
    MODULE_NAME = "module_name"
    MODULE_VERSION = "module_version"
    MODULE_TAG = "module_tag"
    ENGINE_FEATURE = "engine_feature"
    MODULE_FEATURE = "module_feature"
    APPLICATION_TYPE = "application_type"
    START_MODE = "start_mode"
    FREE_TEXT = "free_text"


SENTINELS = {
    ScrubCategory.MODULE_NAME: ANONYMOUS,
    ScrubCategory.MODULE_VERSION: ANONYMOUS_VERSION,
    ScrubCategory.MODULE_TAG: NO_TAG,
    ScrubCategory.ENGINE_FEATURE: ANONYMOUS,
    ScrubCategory.MODULE_FEATURE: ANONYMOUS,
    ScrubCategory.APPLICATION_TYPE: NO_TAG,
    ScrubCategory.START_MODE: NO_TAG,
    ScrubCategory.FREE_TEXT: "",
}


class Scrubber:
    """Replaces values that are not allowlisted with a fixed sentinel.

    ``scrub`` is total and idempotent: it accepts any input, never raises, and
    scrubbing an already scrubbed value returns it unchanged.
    """

    def __init__(self, allowlists: AllowlistSet | None = None):
        self._allowlists = allowlists or default_allowlists()

    @property
    def allowlists(self) -> AllowlistSet:
        return self._allowlists

    def scrub(self, category: ScrubCategory, value: Any) -> str:
        try:
            category = ScrubCategory(category)
        except (TypeError, ValueError):
            return ANONYMOUS
        if not isinstance(value, str):
            return SENTINELS.get(category, ANONYMOUS)
        if category is ScrubCategory.FREE_TEXT:
            return value
        if self.is_allowed(category, value):
            return value
        return SENTINELS.get(category, ANONYMOUS)

    def is_allowed(self, category: ScrubCategory, value: str) -> bool:
        lists = self._allowlists
        if category is ScrubCategory.MODULE_NAME:
            return value in lists.modules
        if category is ScrubCategory.MODULE_VERSION:
            return _VERSION_RE.fullmatch(value) is not None
        if category is ScrubCategory.MODULE_TAG:
            return value in lists.module_tags
        if category is ScrubCategory.ENGINE_FEATURE:
            return value in lists.engine_features
        if category is ScrubCategory.MODULE_FEATURE:
            # Module features are named "<Module>.<Feature>"; report them only
            # for modules we would report by name.
            module, _, feature = value.rpartition(".")
            return bool(module) and bool(feature) and module in lists.modules
        if category is ScrubCategory.APPLICATION_TYPE:
            return value in lists.application_types
        if category is ScrubCategory.START_MODE:
            return value in lists.start_modes
        return category is ScrubCategory.FREE_TEXT


def anonymize_platform(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a transport context with machine-identifying fields masked.

    Transports call this on whatever they populate automatically, just before
    a record leaves the process.
    """
    masked = dict(context)
    for key in PLATFORM_FIELDS:
        if key in masked:
            masked[key] = NOT_AVAILABLE
    return masked
