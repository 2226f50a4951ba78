from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ContractCall:
    target: str
    signature: str
    output_types: tuple[str, ...]
    args: tuple = field(default_factory=tuple)

    @property
    def input_types(self) -> list[str]:
        inner = self.signature[self.signature.index("(") + 1 : self.signature.rindex(")")]
        return [item.strip() for item in inner.split(",") if item.strip()]


@dataclass(frozen=True)
class CallResult:
    success: bool
    values: tuple = ()

    def first_int(self) -> int | None:
        if not self.success or not self.values:
            return None
        return int(self.values[0])


SLOT0 = ("slot0()", ("uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"))
BALANCE_OF = ("balanceOf(address)", ("uint256",))
GET_RESERVES = ("getReserves()", ("uint112", "uint112", "uint32"))
TOTAL_SUPPLY = ("totalSupply()", ("uint256",))
EQUITY_PRICE = ("price()", ("uint256",))
BRIDGE_MINTED = ("minted()", ("uint256",))


def build_call(target: str, function: tuple[str, tuple[str, ...]], *args) -> ContractCall:
    signature, output_types = function
    return ContractCall(target=target, signature=signature, output_types=output_types, args=args)
