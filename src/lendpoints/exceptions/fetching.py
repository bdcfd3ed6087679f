from lendpoints.exceptions.base import LendPointsError


class FetchingError(LendPointsError):
    """
    Raised when chain data needed by the indexer cannot be retrieved from the RPC endpoint.
    """


class LogFetchingTimeout(FetchingError):
    """
    Raised by `fetch_logs_retrying` when a chunk of the requested range keeps failing.
    """

    def __init__(self, max_retries: int, from_block: int | None = None) -> None:
        self.max_retries = max_retries
        self.from_block = from_block
        location = "" if from_block is None else f" starting at block {from_block:,}"
        super().__init__(message=f"Gave up fetching logs{location} after {max_retries} attempts.")
