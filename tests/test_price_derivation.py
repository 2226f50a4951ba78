from __future__ import annotations

from decimal import Decimal
import unittest

from app.domain.entities.pool import ConcentratedPool, Token
from app.domain.services.price_derivation import (
    derive_price,
    find_reference_pool,
    pool_price_ratio,
    price_from_sqrt,
    select_derivation_targets,
)
from app.domain.services.univ3_math import sqrt_price_x96_to_price


RATIO_FOUR = 2**97


def _token(address: str, decimals: int = 18) -> Token:
    return Token(address=address, decimals=decimals, symbol=address.upper(), name=address, chain_id=5115)


class PriceDerivationTests(unittest.TestCase):
    def setUp(self):
        self.tokens = {
            "0xunknown": _token("0xunknown"),
            "0xstable": _token("0xstable"),
            "0xother": _token("0xother"),
        }

    def test_sqrt_price_ratio_is_squared_and_decimal_adjusted(self):
        self.assertEqual(sqrt_price_x96_to_price(RATIO_FOUR, 18, 18), Decimal("4"))
        self.assertEqual(sqrt_price_x96_to_price(RATIO_FOUR, 18, 6), Decimal("4E+12"))

    def test_unknown_token0_is_ratio_times_counterpart(self):
        pool = ConcentratedPool(address="0xpool", token0="0xunknown", token1="0xstable", fee=3000)
        reference = find_reference_pool("0xUNKNOWN", [pool], {"0xstable": Decimal("1")})

        self.assertIsNotNone(reference)
        self.assertTrue(reference.unknown_is_token0)
        price = price_from_sqrt(reference, RATIO_FOUR, Decimal("1"), self.tokens)
        self.assertEqual(price, Decimal("4"))

    def test_unknown_token1_is_counterpart_over_ratio(self):
        pool = ConcentratedPool(address="0xpool", token0="0xstable", token1="0xunknown", fee=3000)
        reference = find_reference_pool("0xunknown", [pool], {"0xstable": Decimal("1")})

        self.assertFalse(reference.unknown_is_token0)
        price = price_from_sqrt(reference, RATIO_FOUR, Decimal("1"), self.tokens)
        self.assertEqual(price, Decimal("0.25"))

    def test_reference_pool_is_first_match_in_list_order(self):
        first = ConcentratedPool(address="0xfirst", token0="0xunknown", token1="0xstable", fee=500)
        second = ConcentratedPool(address="0xsecond", token0="0xunknown", token1="0xother", fee=3000)
        prices = {"0xstable": Decimal("1"), "0xother": Decimal("2")}

        reference = find_reference_pool("0xunknown", [first, second], prices)
        self.assertEqual(reference.pool.address, "0xfirst")

        reference = find_reference_pool("0xunknown", [second, first], prices)
        self.assertEqual(reference.pool.address, "0xsecond")

    def test_unpriced_counterpart_is_not_a_reference(self):
        pool = ConcentratedPool(address="0xpool", token0="0xunknown", token1="0xother", fee=3000)
        self.assertIsNone(find_reference_pool("0xunknown", [pool], {"0xother": Decimal("0")}))

    def test_targets_are_single_hop(self):
        pools = [
            ConcentratedPool(address="0xa", token0="0xunknown", token1="0xstable", fee=3000),
            ConcentratedPool(address="0xb", token0="0xother", token1="0xunknown", fee=3000),
        ]
        prices = {"0xunknown": Decimal("0"), "0xstable": Decimal("1"), "0xother": Decimal("0")}

        targets = select_derivation_targets(prices, pools)

        self.assertEqual([target.token for target in targets], ["0xunknown"])

    def test_invalid_ratio_or_counterpart_yields_none(self):
        self.assertIsNone(pool_price_ratio(None, 18, 18))
        self.assertIsNone(pool_price_ratio(0, 18, 18))
        self.assertIsNone(derive_price(Decimal("4"), Decimal("0"), unknown_is_token0=True))
        self.assertIsNone(derive_price(None, Decimal("1"), unknown_is_token0=False))

    def test_missing_token_metadata_yields_none(self):
        pool = ConcentratedPool(address="0xpool", token0="0xmissing", token1="0xstable", fee=3000)
        reference = find_reference_pool("0xmissing", [pool], {"0xstable": Decimal("1")})
        self.assertIsNone(price_from_sqrt(reference, RATIO_FOUR, Decimal("1"), self.tokens))


if __name__ == "__main__":
    unittest.main()
