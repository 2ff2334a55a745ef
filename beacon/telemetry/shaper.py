"""Turn typed telemetry requests into scrubbed TelemetryEvents.

One constructor per kind. Every string that came from outside goes through
the context's Scrubber, node and session ids are attached to every event, and
numeric values go to ``measurements`` rather than ``properties``.

Constructors never raise. A missing input becomes its category's sentinel,
and a property whose computation fails is reported as TELEMETRY_FAILURE.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from beacon.telemetry.context import TelemetryContext
from beacon.telemetry.models import MODULE_LOAD_KINDS, ModuleInfo, TelemetryEvent, TelemetryKind
from beacon.telemetry.scrubber import ANONYMOUS, ANONYMOUS_VERSION, ScrubCategory

logger = logging.getLogger("beacon.telemetry.shaper")

TELEMETRY_FAILURE = "TELEMETRY_FAILURE"

_FEATURE_KINDS = {
    # (module_scoped, activated) -> kind
    (False, True): TelemetryKind.EXPERIMENTAL_ENGINE_FEATURE_ACTIVATION,
    (False, False): TelemetryKind.EXPERIMENTAL_ENGINE_FEATURE_DEACTIVATION,
    (True, True): TelemetryKind.EXPERIMENTAL_MODULE_FEATURE_ACTIVATION,
    (True, False): TelemetryKind.EXPERIMENTAL_MODULE_FEATURE_DEACTIVATION,
}


def _safe(compute: Callable[[], str]) -> str:
    try:
        return compute()
    except Exception:
        logger.debug("Failed to compute telemetry property", exc_info=True)
        return TELEMETRY_FAILURE


def _base_properties(ctx: TelemetryContext) -> dict[str, str]:
    return {"nodeId": ctx.node_id, "sessionId": ctx.session_id}


def _version_text(version: Any) -> Optional[str]:
    if version is None:
        return None
    if isinstance(version, (tuple, list)):
        return ".".join(str(part) for part in version)
    return str(version)


def version_measurement(version: str) -> float:
    """Express a dotted version as a major.minor decimal, 0.0 if it isn't one.

    The decimal is lossy: ``1.10`` and ``1.1`` both become 1.1, and patch
    levels are dropped. The exact scrubbed version is always sent alongside
    as the ``moduleVersion`` property.
    """
    parts = version.split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return 0.0
    return float(f"{major}.{minor}")


def _feature_category(feature: Any) -> ScrubCategory:
    if isinstance(feature, str) and "." in feature:
        return ScrubCategory.MODULE_FEATURE
    return ScrubCategory.ENGINE_FEATURE


def application_type(ctx: TelemetryContext, app_type: Any) -> TelemetryEvent:
    properties = _base_properties(ctx)
    properties["applicationType"] = _safe(
        lambda: ctx.scrubber.scrub(ScrubCategory.APPLICATION_TYPE, app_type)
    )
    return TelemetryEvent(TelemetryKind.APPLICATION_TYPE, properties, {"count": 1.0})


def module_load(
    ctx: TelemetryContext,
    module: Optional[ModuleInfo],
    kind: TelemetryKind = TelemetryKind.MODULE_LOAD,
) -> TelemetryEvent:
    """Shape a module load. Versions of anonymized modules are never reported."""
    if kind not in MODULE_LOAD_KINDS:
        kind = TelemetryKind.MODULE_LOAD
    scrub = ctx.scrubber.scrub

    module_name = _safe(lambda: scrub(ScrubCategory.MODULE_NAME, getattr(module, "name", None)))

    if module_name == ANONYMOUS or module_name == TELEMETRY_FAILURE:
        version = ANONYMOUS_VERSION
    else:
        version = _safe(
            lambda: scrub(ScrubCategory.MODULE_VERSION, _version_text(getattr(module, "version", None)))
        )

    def _tag() -> str:
        for tag in getattr(module, "tags", None) or ():
            scrubbed = scrub(ScrubCategory.MODULE_TAG, tag)
            if scrubbed == tag:
                return scrubbed
        return scrub(ScrubCategory.MODULE_TAG, None)

    properties = _base_properties(ctx)
    properties["moduleName"] = module_name
    properties["moduleVersion"] = version
    properties["moduleTag"] = _safe(_tag)

    measurements = {
        "count": 1.0,
        "moduleVersion": version_measurement(version) if version != TELEMETRY_FAILURE else 0.0,
    }
    return TelemetryEvent(kind, properties, measurements)


def module_load_by_name(
    ctx: TelemetryContext,
    name: Any,
    kind: TelemetryKind = TelemetryKind.MODULE_LOAD,
) -> TelemetryEvent:
    if kind not in MODULE_LOAD_KINDS:
        kind = TelemetryKind.MODULE_LOAD
    properties = _base_properties(ctx)
    properties["moduleName"] = _safe(lambda: ctx.scrubber.scrub(ScrubCategory.MODULE_NAME, name))
    return TelemetryEvent(kind, properties, {"count": 1.0})


def experimental_feature(
    ctx: TelemetryContext,
    feature: Any,
    activated: bool,
    module_scoped: bool = False,
) -> TelemetryEvent:
    kind = _FEATURE_KINDS[(bool(module_scoped), bool(activated))]
    category = ScrubCategory.MODULE_FEATURE if module_scoped else ScrubCategory.ENGINE_FEATURE
    properties = _base_properties(ctx)
    properties["featureName"] = _safe(lambda: ctx.scrubber.scrub(category, feature))
    return TelemetryEvent(kind, properties, {"count": 1.0})


def experimental_use(ctx: TelemetryContext, feature: Any, detail: Any) -> TelemetryEvent:
    scrub = ctx.scrubber.scrub
    properties = _base_properties(ctx)
    properties["featureName"] = _safe(lambda: scrub(_feature_category(feature), feature))
    properties["detail"] = _safe(lambda: scrub(ScrubCategory.FREE_TEXT, detail))
    return TelemetryEvent(TelemetryKind.EXPERIMENTAL_FEATURE_USE, properties, {"count": 1.0})


def startup(ctx: TelemetryContext, mode: Any, parameters_used: Any) -> TelemetryEvent:
    """Shape the once-per-process startup payload.

    ``parameters_used`` is a bitmap of the command-line parameters the host
    was started with, reported as a double.
    """
    scrub = ctx.scrubber.scrub
    properties = _base_properties(ctx)
    properties["startMode"] = _safe(lambda: scrub(ScrubCategory.START_MODE, mode))
    properties["hostVersion"] = _safe(lambda: scrub(ScrubCategory.FREE_TEXT, ctx.host_version))
    properties["osDescription"] = _safe(lambda: scrub(ScrubCategory.FREE_TEXT, ctx.os_description))
    properties["distributionChannel"] = _safe(
        lambda: scrub(ScrubCategory.FREE_TEXT, ctx.distribution_channel)
    )

    try:
        bitmap = float(parameters_used)
    except (TypeError, ValueError, OverflowError):
        bitmap = 0.0
    return TelemetryEvent(TelemetryKind.STARTUP, properties, {"parametersUsed": bitmap})


def metric(ctx: TelemetryContext, kind: TelemetryKind, data: Any) -> TelemetryEvent:
    """Shape a generic named metric with a free-form string payload.

    Kinds whose payload is a governed name are routed to their own
    constructor so the payload is still checked against the allowlist.
    """
    try:
        kind = TelemetryKind(kind)
    except (TypeError, ValueError):
        kind = TelemetryKind.METRIC

    if kind is TelemetryKind.APPLICATION_TYPE:
        return application_type(ctx, data)
    if kind in MODULE_LOAD_KINDS:
        return module_load_by_name(ctx, data, kind)
    if kind is TelemetryKind.EXPERIMENTAL_FEATURE_USE:
        return experimental_use(ctx, data, None)
    for (module_scoped, activated), feature_kind in _FEATURE_KINDS.items():
        if kind is feature_kind:
            return experimental_feature(ctx, data, activated, module_scoped)

    properties = _base_properties(ctx)
    properties["detail"] = _safe(lambda: ctx.scrubber.scrub(ScrubCategory.FREE_TEXT, data))
    return TelemetryEvent(kind, properties, {"count": 1.0})
