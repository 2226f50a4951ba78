from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from web3 import AsyncWeb3

from app.domain.entities.onchain import CallResult, ContractCall


logger = logging.getLogger(__name__)


MULTICALL3_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"name": "target", "type": "address"},
                    {"name": "allowFailure", "type": "bool"},
                    {"name": "callData", "type": "bytes"},
                ],
                "name": "calls",
                "type": "tuple[]",
            }
        ],
        "name": "aggregate3",
        "outputs": [
            {
                "components": [
                    {"name": "success", "type": "bool"},
                    {"name": "returnData", "type": "bytes"},
                ],
                "name": "returnData",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "payable",
        "type": "function",
    }
]


class OnchainReadError(RuntimeError):
    pass


def encode_call_data(call: ContractCall) -> bytes:
    selector = AsyncWeb3.keccak(text=call.signature)[:4]
    if not call.input_types:
        return bytes(selector)
    args = [
        AsyncWeb3.to_checksum_address(value) if kind == "address" else value
        for kind, value in zip(call.input_types, call.args)
    ]
    return bytes(selector) + abi_encode(call.input_types, args)


def decode_result(call: ContractCall, success: bool, data: bytes) -> CallResult:
    if not success or not data:
        return CallResult(success=False)
    try:
        values = abi_decode(list(call.output_types), data)
    except Exception as exc:
        logger.debug(
            "multicall_client: decode_failed target=%s signature=%s error=%s",
            call.target,
            call.signature,
            exc,
        )
        return CallResult(success=False)
    return CallResult(success=True, values=tuple(values))


def _default_web3(rpc_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))


class MulticallReader:
    """Batched view calls through Multicall3 ``aggregate3``, one round trip per batch."""

    def __init__(
        self,
        *,
        rpc_urls: dict,
        multicall_address: str,
        web3_factory: Callable[[str], Any] | None = None,
    ):
        self._rpc_urls = {int(chain_id): url for chain_id, url in rpc_urls.items() if url}
        self._multicall_address = AsyncWeb3.to_checksum_address(multicall_address)
        self._web3_factory = web3_factory or _default_web3
        self._clients: dict[int, Any] = {}

    def supports(self, chain_id: int) -> bool:
        return chain_id in self._rpc_urls

    def _contract(self, chain_id: int):
        w3 = self._clients.get(chain_id)
        if w3 is None:
            w3 = self._web3_factory(self._rpc_urls[chain_id])
            self._clients[chain_id] = w3
        return w3.eth.contract(address=self._multicall_address, abi=MULTICALL3_ABI)

    async def read_many(self, *, chain_id: int, calls: list[ContractCall]) -> list[CallResult]:
        if not calls:
            return []
        if not self.supports(chain_id):
            raise OnchainReadError(f"No RPC configured for chain {chain_id}.")

        payload = [
            (AsyncWeb3.to_checksum_address(call.target), True, encode_call_data(call))
            for call in calls
        ]
        try:
            raw_results = await self._contract(chain_id).functions.aggregate3(payload).call()
        except Exception as exc:
            logger.warning(
                "multicall_client: batch_failed chain_id=%s calls=%s error=%s",
                chain_id,
                len(calls),
                exc,
            )
            raise OnchainReadError(f"Multicall batch failed: {exc}") from exc

        results = [
            decode_result(call, bool(success), bytes(data))
            for call, (success, data) in zip(calls, raw_results)
        ]
        failed = sum(1 for result in results if not result.success)
        logger.debug(
            "multicall_client: batch_done chain_id=%s calls=%s failed=%s",
            chain_id,
            len(calls),
            failed,
        )
        return results
