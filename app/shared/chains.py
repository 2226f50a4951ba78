from __future__ import annotations

from dataclasses import fields
import logging

from app.domain.entities.chain import ChainContracts
from app.domain.services.token_category import stablecoin_addresses


logger = logging.getLogger(__name__)


CITREA_MAINNET = 4114
CITREA_TESTNET = 5115

CHAIN_NAMES = {
    1: "ETHEREUM",
    11155111: "ETHEREUM_SEPOLIA",
    137: "POLYGON",
    CITREA_TESTNET: "CITREA_TESTNET",
    CITREA_MAINNET: "CITREA_MAINNET",
}

DEFAULT_CHAIN_CONTRACTS: dict[int, dict[str, str]] = {
    CITREA_TESTNET: {
        "jusd": "0xFdB0a83d94CD65151148a131167Eb499Cb85d015",
        "sv_jusd": "0x9580498224551E3f2e3A04330a684BF025111C53",
        "juice": "0x7b2A560bf72B0Dd2EAbE3271F829C2597c8420d5",
        "usdc": "0x36c16eaC6B0Ba6c50f494914ff015fCa95B7835F",
        "wcbtc": "0x4370e27F7d91D9341bFf232d7Ee8bdfE3a9933a0",
    },
    CITREA_MAINNET: {},
}


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"CHAIN_{chain_id}")


def build_chain_contracts(overrides: dict | None = None) -> dict[int, ChainContracts]:
    """Merge built-in addresses with the JSON overrides keyed by chain id."""
    allowed = {field.name for field in fields(ChainContracts)} - {"chain_id"}
    merged: dict[int, dict[str, str]] = {
        chain_id: dict(values) for chain_id, values in DEFAULT_CHAIN_CONTRACTS.items()
    }
    for raw_chain_id, values in (overrides or {}).items():
        if not isinstance(values, dict):
            continue
        bucket = merged.setdefault(int(raw_chain_id), {})
        for key, address in values.items():
            normalized_key = str(key).strip().lower()
            if normalized_key in allowed and address:
                bucket[normalized_key] = str(address)

    return {
        chain_id: ChainContracts(chain_id=chain_id, **values)
        for chain_id, values in merged.items()
    }


def check_default_chain(contracts: dict[int, ChainContracts], chain_id: int) -> bool:
    """Warn when the default chain has no stablecoin to anchor prices on."""
    chain_contracts = contracts.get(chain_id)
    if chain_contracts is not None and stablecoin_addresses(chain_contracts):
        return True
    logger.warning(
        "chains: default_chain_without_stablecoin chain_id=%s chain=%s hint=set CHAIN_CONTRACTS",
        chain_id,
        chain_name(chain_id),
    )
    return False
