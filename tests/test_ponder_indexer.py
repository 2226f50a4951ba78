from __future__ import annotations

import asyncio

from app.domain.exceptions import IndexerRequestError
from app.infrastructure.clients.ponder_indexer import PonderIndexer


class FakePonderClient:
    def __init__(self, *, data: dict | None = None, payload: dict | None = None, error: Exception | None = None):
        self._data = data or {}
        self._payload = payload or {}
        self._error = error
        self.queries: list[dict] = []

    async def query(self, query: str, variables: dict | None = None) -> dict:
        _ = query
        self.queries.append(variables or {})
        if self._error is not None:
            raise self._error
        return self._data

    async def get(self, path: str) -> dict:
        _ = path
        if self._error is not None:
            raise self._error
        return self._payload


def _indexer(client: FakePonderClient) -> PonderIndexer:
    return PonderIndexer(client=client, now=lambda: 100_000.0)


def test_tokens_and_pools_are_mapped():
    client = FakePonderClient(
        data={
            "tokens": {"items": [{"address": "0xT", "decimals": "6", "symbol": "USDC", "name": "USD Coin"}]},
            "pools": {"items": [{"address": "0xP", "token0": "0xA", "token1": "0xB", "fee": 3000}]},
        }
    )
    indexer = _indexer(client)

    tokens = asyncio.run(indexer.fetch_tokens(chain_id=5115))
    pools = asyncio.run(indexer.fetch_v3_pools(chain_id=5115))

    assert tokens[0].decimals == 6
    assert tokens[0].chain_id == 5115
    assert pools[0].fee == 3000
    assert client.queries[0] == {"where": {"chainId": 5115}}


def test_buckets_use_time_cutoff():
    client = FakePonderClient(
        data={
            "poolStats": {
                "items": [
                    {
                        "poolAddress": "0xP",
                        "volume0": "10",
                        "volume1": "20",
                        "txCount": 3,
                        "timestamp": "99000",
                        "type": "1h",
                    }
                ]
            }
        }
    )
    indexer = _indexer(client)

    buckets = asyncio.run(indexer.fetch_pool_buckets(chain_id=5115, bucket_type="1h", hours_back=24))

    assert buckets[0].volume1 == 20
    assert buckets[0].tx_count == 3
    assert client.queries[0]["where"] == {
        "type": "1h",
        "chainId": 5115,
        "timestamp_gte": str(100_000 - 24 * 3600),
    }


def test_v2_pools_come_from_graduated_pools_endpoint():
    client = FakePonderClient(
        payload={
            "pools": [
                {
                    "pairAddress": "0xPair",
                    "token0": "0xA",
                    "token1": "0xB",
                    "launchpadTokenAddress": "0xB",
                }
            ]
        }
    )

    pools = asyncio.run(_indexer(client).fetch_v2_pools(chain_id=5115))

    assert pools[0].address == "0xPair"
    assert pools[0].launchpad_token == "0xB"


def test_snapshots_are_sorted_and_swaps_mapped():
    client = FakePonderClient(
        data={
            "poolActivitys": {
                "items": [
                    {"poolAddress": "0xP", "sqrtPriceX96": "2", "blockTimestamp": "20"},
                    {"poolAddress": "0xP", "sqrtPriceX96": "1", "blockTimestamp": "10"},
                ]
            },
            "transactionSwaps": {
                "items": [
                    {
                        "txHash": "0xh",
                        "blockTimestamp": "5",
                        "from": "0xuser",
                        "tokenIn": "0xA",
                        "tokenOut": "0xB",
                        "amountIn": "100",
                        "amountOut": "-50",
                    }
                ]
            },
        }
    )
    indexer = _indexer(client)

    snapshots = asyncio.run(indexer.fetch_pool_snapshots(chain_id=5115))
    swaps = asyncio.run(indexer.fetch_recent_swaps(chain_id=5115))

    assert [item.timestamp for item in snapshots] == [10, 20]
    assert swaps[0].swapper == "0xuser"
    assert swaps[0].amount_out == -50
    assert swaps[0].chain_id == 5115


def test_failures_degrade_to_empty_lists():
    indexer = _indexer(FakePonderClient(error=IndexerRequestError("down")))

    async def scenario():
        return await asyncio.gather(
            indexer.fetch_tokens(chain_id=5115),
            indexer.fetch_v3_pools(chain_id=5115),
            indexer.fetch_v2_pools(chain_id=5115),
            indexer.fetch_pool_buckets(chain_id=5115, bucket_type="24h", hours_back=720),
            indexer.fetch_v2_pool_buckets(chain_id=5115, bucket_type="1h", hours_back=24),
            indexer.fetch_token_buckets(chain_id=5115, bucket_type="1h", hours_back=24),
            indexer.fetch_pool_snapshots(chain_id=5115),
            indexer.fetch_recent_swaps(chain_id=5115),
        )

    assert asyncio.run(scenario()) == [[]] * 8


def test_malformed_rows_degrade_to_empty_list():
    indexer = _indexer(FakePonderClient(data={"tokens": {"items": [{"symbol": "NOADDR"}]}}))

    assert asyncio.run(indexer.fetch_tokens(chain_id=5115)) == []
