"""
Exception hierarchy for the indexer.

TransientRpcError and InvalidContractResult are recovered inside the retry
invoker. ContractCallFailed and MetadataFetchError are terminal and reach the
crawler, the sweeper or the HTTP layer, which log them and carry on.
"""

from typing import Any, Sequence


class IndexerError(Exception):
    """Base class for every error raised by the indexer core"""


class TransientRpcError(IndexerError):
    """A single failed attempt at a contract call"""

    def __init__(self, method: str, args: Sequence[Any], cause: BaseException):
        self.method = method
        self.args_ = tuple(args)
        self.cause = cause
        super().__init__(f"contractCall:{method} attempt failed: {cause}")


class InvalidContractResult(IndexerError):
    """The node answered, but the answer failed validation"""

    def __init__(self, method: str, args: Sequence[Any], result: Any = None):
        self.method = method
        self.args_ = tuple(args)
        self.result = result
        super().__init__(f"contractCall:{method} returned an invalid result for args={list(args)}")


class ContractCallFailed(IndexerError):
    """A contract call failed after exhausting all retries"""

    def __init__(self, method: str, args: Sequence[Any], last_error: BaseException | None):
        self.method = method
        self.args_ = tuple(args)
        self.last_error = last_error
        super().__init__(
            f"contractCall:{method}, failed. args: {list(args)}, last error: {last_error}"
        )


class MetadataFetchError(IndexerError):
    """NFT metadata could not be loaded"""

    def __init__(self, url: str, detail: str):
        self.url = url
        self.detail = detail
        super().__init__(f"loadNftData: failed to load {url}: {detail}")
