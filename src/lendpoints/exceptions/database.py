import pathlib

from lendpoints.exceptions.base import LendPointsError


class BackupExists(LendPointsError):
    """
    Raised instead of overwriting an earlier `.bak` copy of the ledger database.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        super().__init__(message=f"Refusing to overwrite the existing backup at {path}.")


class DatabaseNotFound(LendPointsError):
    """
    Raised by database maintenance operations if no database exists at the configured path.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        super().__init__(message=f"No database exists at {path}.")
