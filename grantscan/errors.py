"""Exceptions that abort a grantscan run.

Per-call analysis problems are never raised; they are recorded as
diagnostics (see grantscan.analyzer.diagnostics).
"""


class GrantscanError(Exception):
    """Base class for fatal grantscan errors."""


class ProjectConfigError(GrantscanError):
    """The project's tsconfig could not be located or parsed."""

    @classmethod
    def not_found(cls, config_name: str, base_path) -> 'ProjectConfigError':
        return cls(f"Could not find a valid '{config_name}' from {base_path}.")

    @classmethod
    def parse_error(cls, path, reason: str) -> 'ProjectConfigError':
        return cls(f"Failed to parse project config at {path}: {reason}")


class RegistryError(GrantscanError):
    """A model registry document is missing or malformed."""


class StoreFormatError(GrantscanError):
    """A saved usage store is not shaped like the one save_store writes."""


class GrantApplyError(GrantscanError):
    """Grant statements could not be run against the database."""
