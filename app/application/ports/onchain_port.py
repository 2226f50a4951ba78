from __future__ import annotations

from typing import Protocol

from app.domain.entities.onchain import CallResult, ContractCall


class OnchainReaderPort(Protocol):
    def supports(self, chain_id: int) -> bool:
        ...

    async def read_many(self, *, chain_id: int, calls: list[ContractCall]) -> list[CallResult]:
        """One batched round trip; result order matches ``calls``."""
        ...
