"""bmad-bundle exception hierarchy.

All bundle-specific exceptions inherit from BundleError, so callers at the
host boundary can catch one type and turn it into a structured failure.
"""

from __future__ import annotations

from collections.abc import Sequence


class BundleError(Exception):
    """Base exception for all bmad-bundle errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(BundleError):
    """Invalid or missing configuration."""


class MissingSourceError(BundleError):
    """A referenced source file does not exist."""

    def __init__(self, path: str, message: str = "") -> None:
        super().__init__(message or f"source file not found: {path}")
        self.path = path


class UnreadableFileError(BundleError):
    """A bundled file exists but is not valid UTF-8 text."""

    def __init__(self, path: str, message: str = "") -> None:
        super().__init__(message or f"file is not valid UTF-8 text: {path}")
        self.path = path


class MissingManifestError(BundleError):
    """A required manifest (agent index or manifest.json) is absent."""


# Name used by the discovery side.
ManifestMissingError = MissingManifestError


class SchemaError(BundleError):
    """Malformed or incomplete manifest."""


class ManifestParseError(SchemaError):
    """manifest.json is not valid JSON."""


class ManifestSchemaError(SchemaError):
    """manifest.json is missing a field or has a field of the wrong type."""

    def __init__(self, field: str, message: str = "") -> None:
        super().__init__(message or f"invalid manifest: missing or invalid field '{field}'")
        self.field = field


class BuildValidationError(BundleError):
    """Post-build validation found one or more problems."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            "build validation failed:\n" + "\n".join(f"  - {item}" for item in self.problems)
        )


class PathEscapeError(BundleError):
    """A resolved path would leave its designated root."""

    def __init__(self, root: str, candidate: str) -> None:
        super().__init__(f"path escapes root: {candidate} is not within {root}")
        self.root = root
        self.candidate = candidate


class LookupFailedError(BundleError):
    """Unknown identifier supplied by a caller."""

    kind = "item"

    def __init__(self, identifier: str, available: Sequence[str] = ()) -> None:
        self.identifier = identifier
        self.available = list(available)
        super().__init__(f"{self.kind} not found: {identifier}")


class WorkflowNotFoundError(LookupFailedError):
    kind = "workflow"


class AgentNotFoundError(LookupFailedError):
    kind = "agent"
