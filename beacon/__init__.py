"""beacon - opt-out, privacy-scrubbing usage telemetry for host applications."""


def _get_version() -> str:
    """Get beacon version safely."""
    try:
        from importlib.metadata import version

        return version("beacon-telemetry")
    except Exception:
        return "0.0.0"


__version__ = _get_version()
