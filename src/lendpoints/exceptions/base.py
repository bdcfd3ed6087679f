class LendPointsError(Exception):
    """
    Root of the exception hierarchy for the indexer.

    Fetching, database and indexing failures derive from this class, so an update loop can separate
    problems detected by the indexer from errors raised by web3, SQLAlchemy or the interpreter:

    ```
    try:
        update_protocol(...)
    except MissingAccount:
        ...  # the stored state is inconsistent, stop and investigate
    except LendPointsError:
        ...  # any other failure detected by the indexer
    ```

    A message passed at construction is available as `.message`.
    """

    message: str | None = None

    def __init__(self, message: str | None = None) -> None:
        if message:
            self.message = message
            super().__init__(message)


class LendPointsValueError(LendPointsError):
    """
    Raised when an argument has the right type but an unusable value.
    """
