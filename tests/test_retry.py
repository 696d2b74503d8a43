#!/usr/bin/env python3
"""
Tests for the retrying contract-call wrapper
"""

import pytest

from marketplace_indexer.constants import NULL_ADDRESS
from marketplace_indexer.errors import ContractCallFailed, InvalidContractResult
from marketplace_indexer.indexer.marketplace import MarketplaceReader
from marketplace_indexer.indexer.retry import RetryInvoker


class ScriptedChain:
    """Returns (or raises) the scripted outcomes in order"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.reconnects = 0

    async def call(self, method, *args):
        self.calls.append((method, args))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def reconnect(self):
        self.reconnects += 1


class TestRetryInvoker:

    async def test_succeeds_after_two_failures(self):
        chain = ScriptedChain([TimeoutError("t1"), ConnectionError("t2"), 42])
        invoker = RetryInvoker(chain)

        assert await invoker.invoke("auctionsLength", max_retries=2) == 42
        assert len(chain.calls) == 3
        assert chain.reconnects == 2

    async def test_gives_up_after_exhausting_retries(self):
        last = ConnectionError("third strike")
        chain = ScriptedChain([TimeoutError("t1"), TimeoutError("t2"), last])
        invoker = RetryInvoker(chain)

        with pytest.raises(ContractCallFailed) as exc_info:
            await invoker.invoke("auctions", 7, max_retries=2)

        error = exc_info.value
        assert error.method == "auctions"
        assert error.args_ == (7,)
        assert error.last_error is last
        assert len(chain.calls) == 3
        # No reconnect after the final attempt
        assert chain.reconnects == 2

    async def test_zero_retries_is_a_single_attempt(self):
        chain = ScriptedChain([ConnectionError("down")])
        invoker = RetryInvoker(chain)

        with pytest.raises(ContractCallFailed):
            await invoker.invoke("auctionsLength", max_retries=0)
        assert len(chain.calls) == 1
        assert chain.reconnects == 0

    async def test_default_retries_come_from_constructor(self):
        chain = ScriptedChain([ConnectionError("a"), 5])
        invoker = RetryInvoker(chain, max_retries=1)

        assert await invoker.invoke("auctionsLength") == 5

    async def test_invalid_result_is_retried(self):
        chain = ScriptedChain([0, 0, 3])
        invoker = RetryInvoker(chain)

        result = await invoker.invoke("auctionsLength", validate=lambda r: r > 0)
        assert result == 3
        assert chain.reconnects == 2

    async def test_falsy_validation_is_retried(self):
        chain = ScriptedChain([0, 5])
        invoker = RetryInvoker(chain)

        result = await invoker.invoke("auctionsLength", validate=lambda r: None if r == 0 else True)
        assert result == 5
        assert len(chain.calls) == 2

    async def test_validator_may_raise(self):
        def validate(result):
            raise InvalidContractResult("auctions", (1,), result)

        chain = ScriptedChain([1, 1, 1])
        invoker = RetryInvoker(chain)

        with pytest.raises(ContractCallFailed) as exc_info:
            await invoker.invoke("auctions", 1, validate=validate)
        assert isinstance(exc_info.value.last_error, InvalidContractResult)

    async def test_null_nft_token_auction_is_rejected(self):
        empty = {"nftToken": NULL_ADDRESS}
        real = {
            "nftToken": "0xcA56AF4bde480B3c177E1A4115189F261C2af034",
            "nftTokenId": 9,
            "owner": "0x00000000000000000000000000000000000000AA",
            "token": NULL_ADDRESS,
            "targetPrice": 0,
            "reservePrice": 0,
            "endTime": 100,
            "minIncrement": 0,
            "isSettled": False,
            "highestBidder": NULL_ADDRESS,
            "auctionType": 1,
            "isSold": False,
        }
        chain = ScriptedChain([empty, real])
        reader = MarketplaceReader(RetryInvoker(chain))

        record = await reader.get_auction(3)
        assert record.auction_id == 3
        assert record.nft_token_id == 9
        assert len(chain.calls) == 2
