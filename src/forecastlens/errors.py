from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Required configuration (credentials, network selection, DSN) is missing or invalid.

    Fatal for the whole job run; never collected as a per-item failure.
    """
