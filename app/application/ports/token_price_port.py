from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from app.domain.entities.chain import ChainContracts
from app.domain.entities.market_data import BtcPriceData, BtcPriceHistory
from app.domain.services.token_category import TokenCategory


class TokenPricePort(Protocol):
    def get_chain_contracts(self, chain_id: int) -> ChainContracts | None:
        ...

    def get_token_category(self, chain_id: int, address: str) -> TokenCategory | None:
        ...

    async def get_token_price_usd(self, chain_id: int, address: str) -> Decimal:
        ...

    async def get_token_prices(
        self,
        chain_id: int,
        addresses: list[str],
        *,
        allow_missing_btc: bool = False,
    ) -> dict[str, Decimal]:
        ...

    async def get_btc_price_usd(self) -> Decimal:
        ...

    async def get_btc_price_data(self) -> BtcPriceData:
        ...

    async def get_btc_price_history(self) -> BtcPriceHistory:
        ...
