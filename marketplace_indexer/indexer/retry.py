"""
Bounded retries around contract calls.

Every failed attempt is logged, the chain connection is rebuilt while retries
remain, and the call is issued again. Once retries are exhausted the caller
gets a ContractCallFailed carrying the method, its args and the last error.
"""

import logging
from typing import Any, Callable, Optional

from ..errors import ContractCallFailed, InvalidContractResult, TransientRpcError

logger = logging.getLogger(__name__)


class RetryInvoker:
    """Wraps ChainClient.call with retry and reconnect"""

    def __init__(self, chain, max_retries: int = 2):
        self.chain = chain
        self.max_retries = max_retries

    async def invoke(self, method: str, *args: Any, max_retries: Optional[int] = None,
                     validate: Optional[Callable[[Any], bool]] = None) -> Any:
        """Call a contract view, retrying up to max_retries times after the first attempt"""
        retries = self.max_retries if max_retries is None else max_retries
        last_error: Optional[BaseException] = None

        for attempt in range(1, retries + 2):
            remaining = retries + 1 - attempt
            try:
                try:
                    result = await self.chain.call(method, *args)
                except Exception as e:
                    raise TransientRpcError(method, args, e) from e

                if validate is not None and not validate(result):
                    raise InvalidContractResult(method, args, result)
                return result

            except (TransientRpcError, InvalidContractResult) as e:
                last_error = e.cause if isinstance(e, TransientRpcError) else e
                logger.error(
                    f"contractCall:{method}, args: {list(args)}, attempt {attempt}, "
                    f"{remaining} retries left: {last_error}"
                )
                if remaining > 0:
                    try:
                        await self.chain.reconnect()
                    except Exception as reconnect_error:
                        logger.error(f"Reconnect after failed {method} call failed: {reconnect_error}")

        raise ContractCallFailed(method, args, last_error)
