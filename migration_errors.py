"""
Error classes for the pull request migration.

Per-item problems never raise past the driver loop; they become outcomes.
These exceptions are the ones that stop a run.
"""


class MigrationError(Exception):
    exit_code = 1


class UsageError(MigrationError):
    """Bad or conflicting command line arguments."""
    exit_code = 2


class PreconditionError(MigrationError):
    """Missing tools, credentials, or not inside a usable clone."""


class SetupError(MigrationError):
    """The reference branches could not be fetched."""


class PublishError(MigrationError):
    """Metadata lookup, push or pull request creation failed while publishing."""

    def __init__(self, number, message):
        super().__init__(f"PR #{number}: {message}")
        self.number = number
        self.outcome = None
