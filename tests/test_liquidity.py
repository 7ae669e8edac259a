"""
Test suite for liquidity accounting

Covers:
  - Tier table and impermanent-loss math
  - Share minting / burning and reserve release
  - Incentive rewards with tier multipliers
  - Vested, capped IL protection (40-day ratio 2.0 scenario)
  - Liquidity through a live market

Run with:
    pytest tests/test_liquidity.py -v
"""

from decimal import Decimal

import pytest

from predmarket.constants import SECONDS_PER_DAY, SECONDS_PER_YEAR
from predmarket.exceptions import MarketArithmeticError, PhaseViolation, ValidationError
from predmarket.market import MarketManager, RequestContext
from predmarket.market.liquidity import (
    LiquidityBook,
    build_tiers,
    impermanent_loss,
    tier_for,
)
from predmarket.market.numeric import bps_of, q

D = Decimal
T0 = 1_700_000_000
END = T0 + 60 * SECONDS_PER_DAY
LP = "lp_alice"
LP2 = "lp_bob"


def _seeded_book(amount=D("1000"), prices=(D("0.25"), D("0.75")), now=0, rate=0):
    book = LiquidityBook()
    book.add(LP, amount, D("0"), D("0"), [D("0"), D("0")], list(prices), now, rate)
    return book


# ============================================================================
#  TIERS / IL MATH
# ============================================================================

class TestTiers:

    def test_default_table(self):
        tiers = build_tiers(((D("0"), 10_000), (D("1000"), 11_000), (D("10000"), 12_500)))
        assert tier_for(tiers, D("999")) == 0
        assert tier_for(tiers, D("1000")) == 1
        assert tier_for(tiers, D("50000")) == 2

    def test_empty_table_rejected(self):
        with pytest.raises(ValidationError):
            build_tiers(())

    def test_tier_recomputed_on_deposit(self):
        book = _seeded_book(amount=D("500"))
        assert book.position(LP).tier == 0
        book.add(LP, D("600"), D("500"), D("500"), [D("500"), D("500")], [D("0.5"), D("0.5")], 0, 0)
        assert book.position(LP).tier == 1


class TestImpermanentLoss:

    def test_no_loss_at_unit_ratio(self):
        assert impermanent_loss(D("1")) == D("0")

    def test_ratio_two(self):
        expected = q(1 - 2 * D(2).sqrt() / 3)
        assert impermanent_loss(D("2")) == expected
        assert D("0.057") < expected < D("0.058")

    def test_symmetric(self):
        assert abs(impermanent_loss(D("2")) - impermanent_loss(D("0.5"))) < D("1e-16")

    def test_rejects_non_positive_ratio(self):
        with pytest.raises(MarketArithmeticError):
            impermanent_loss(D("0"))


# ============================================================================
#  SHARES
# ============================================================================

class TestLiquidityShares:

    def test_first_deposit_mints_one_to_one(self):
        book = LiquidityBook()
        deposit = book.add(LP, D("1000"), D("0"), D("0"), [D("0")] * 3, [D("0.5")] * 3, 0, 0)
        assert deposit.shares_minted == D("1000")
        assert deposit.reserve_additions == (D("1000"),) * 3
        assert book.total_shares == D("1000")

    def test_pro_rata_minting(self):
        book = _seeded_book()
        deposit = book.add(LP2, D("500"), D("2000"), D("2000"), [D("1000"), D("3000")],
                           [D("0.5"), D("0.4")], 0, 0)
        assert deposit.shares_minted == D("250")
        # reserves grow with the full pool balance so prices stay put
        assert deposit.reserve_additions == (D("250"), D("750"))

    def test_total_shares_is_sum_of_positions(self):
        book = _seeded_book()
        book.add(LP2, D("300"), D("1000"), D("1000"), [D("1000"), D("1000")], [D("0.5")] * 2, 10, 0)
        book.remove(LP, D("400"), D("1300"), [D("1300"), D("1300")], [D("0.5")] * 2, 20, 0)
        assert book.total_shares == sum(p.shares for p in book.positions.values())

    def test_remove_releases_fraction(self):
        book = _seeded_book(prices=(D("0.5"), D("0.5")))
        w = book.remove(LP, D("250"), D("1000"), [D("800"), D("1200")], [D("0.5"), D("0.5")], 0, 0)
        assert w.principal == D("250")
        assert w.reserve_releases == (D("200"), D("300"))
        assert w.liquidity_removed == D("250")
        assert book.position(LP).shares == D("750")

    def test_remove_more_than_held(self):
        book = _seeded_book()
        with pytest.raises(MarketArithmeticError):
            book.remove(LP, D("1001"), D("1000"), [D("1000")] * 2, [D("0.5")] * 2, 0, 0)

    def test_remove_without_position(self):
        book = _seeded_book()
        with pytest.raises(ValidationError):
            book.remove(LP2, D("1"), D("1000"), [D("1000")] * 2, [D("0.5")] * 2, 0, 0)

    def test_zero_amounts_rejected(self):
        book = _seeded_book()
        with pytest.raises(ValidationError):
            book.add(LP, D("0"), D("1000"), D("1000"), [D("1000")] * 2, [D("0.5")] * 2, 0, 0)
        with pytest.raises(ValidationError):
            book.remove(LP, D("0"), D("1000"), [D("1000")] * 2, [D("0.5")] * 2, 0, 0)


# ============================================================================
#  REWARDS
# ============================================================================

class TestLiquidityRewards:

    def test_one_year_reward_with_multiplier(self):
        book = _seeded_book(amount=D("1000"))
        position = book.position(LP)
        # 1000 * 10% * 1.1 (tier 1)
        assert book.pending_reward(position, SECONDS_PER_YEAR, 1_000) == D("110")

    def test_claim_resets_counter(self):
        book = _seeded_book(amount=D("1000"))
        assert book.claim(LP, SECONDS_PER_YEAR, 1_000) == D("110")
        assert book.claim(LP, SECONDS_PER_YEAR, 1_000) == D("0")

    def test_deposit_settles_pending_reward(self):
        book = _seeded_book(amount=D("500"))
        deposit = book.add(LP, D("500"), D("500"), D("500"), [D("500")] * 2, [D("0.5")] * 2,
                           SECONDS_PER_YEAR, 1_000)
        # 500 * 10% * 1.0 (tier 0 before the top-up)
        assert deposit.settled_reward == D("50")
        assert book.position(LP).unclaimed_reward == D("50")

    def test_withdrawal_pays_and_resets_reward(self):
        book = _seeded_book(amount=D("1000"))
        w = book.remove(LP, D("1000"), D("1000"), [D("1000")] * 2, [D("0.25"), D("0.75")],
                        SECONDS_PER_YEAR, 1_000)
        assert w.reward == D("110")
        assert book.position(LP).unclaimed_reward == D("0")


# ============================================================================
#  IL PROTECTION
# ============================================================================

class TestILProtection:

    def test_forty_day_ratio_two(self):
        book = _seeded_book(amount=D("1000"), prices=(D("0.25"), D("0.75")))
        w = book.remove(LP, D("1000"), D("1000"), [D("1000"), D("1000")],
                        [D("0.5"), D("0.375")], 40 * SECONDS_PER_DAY, 0)
        assert w.vested_fraction == D("1")
        assert abs(w.il_pct - impermanent_loss(D("2"))) < D("1e-16")
        assert w.il_protection == q(D("1000") * w.il_pct)
        assert w.il_protection <= bps_of(D("1000"), 5_000)
        assert w.payout == w.principal + w.il_protection + w.reward

    def test_protection_capped_at_half(self):
        book = _seeded_book(amount=D("1000"), prices=(D("0.001"), D("0.999")))
        w = book.remove(LP, D("1000"), D("1000"), [D("1000")] * 2,
                        [D("0.5"), D("0.5")], 40 * SECONDS_PER_DAY, 0)
        assert w.il_pct > D("0.5")
        assert w.il_protection == D("500")

    def test_partial_vesting(self):
        book = _seeded_book(amount=D("1000"), prices=(D("0.25"), D("0.75")))
        w = book.remove(LP, D("1000"), D("1000"), [D("1000")] * 2,
                        [D("0.5"), D("0.375")], 15 * SECONDS_PER_DAY, 0)
        assert w.vested_fraction == D("0.5")
        assert w.il_protection == q(D("1000") * w.il_pct * D("0.5"))

    def test_no_protection_without_price_move(self):
        book = _seeded_book(amount=D("1000"), prices=(D("0.4"), D("0.6")))
        w = book.remove(LP, D("1000"), D("1000"), [D("1000")] * 2,
                        [D("0.4"), D("0.6")], 90 * SECONDS_PER_DAY, 0)
        assert w.il_protection == D("0")


# ============================================================================
#  THROUGH A MARKET
# ============================================================================

class TestMarketLiquidity:

    def setup_method(self):
        self.manager = MarketManager()
        self.market = self.manager.create_market(
            RequestContext("operator", T0), "Election", ["A", "B"], END,
            initial_liquidity="1000",
        )

    def test_seed_sets_even_prices(self):
        assert self.market.pool_balance == D("1000")
        assert self.market.reserves == [D("1000"), D("1000")]
        assert self.market.get_current_price(0) == D("0.5")
        assert self.market.total_lp_shares == D("1000")

    def test_add_then_remove_returns_deposit(self):
        ctx = RequestContext(LP2, T0 + 10)
        deposit = self.market.add_liquidity(ctx, "500")
        w = self.market.remove_liquidity(ctx, deposit.shares_minted)
        assert abs(w.principal - D("500")) < D("1e-15")
        assert w.il_protection == D("0")
        assert w.reward == D("0")

    def test_deposit_keeps_prices(self):
        self.market.trade(RequestContext("trader", T0 + 5), 0, "100", 10_000, True)
        before = [self.market.get_current_price(i) for i in range(2)]
        self.market.add_liquidity(RequestContext(LP2, T0 + 6), "700")
        after = [self.market.get_current_price(i) for i in range(2)]
        for b, a in zip(before, after):
            assert abs(a - b) < D("1e-15")

    def test_removal_credits_outcome_shares(self):
        w = self.market.remove_liquidity(RequestContext("operator", T0 + 10), "500")
        assert self.market.balance_of(0, "operator") == w.reserve_releases[0] == D("500")
        assert self.market.balance_of(1, "operator") == D("500")
        assert self.market.pool_balance == D("500")

    def test_lp_shares_sum_to_total(self):
        self.market.add_liquidity(RequestContext(LP, T0 + 1), "250")
        self.market.add_liquidity(RequestContext(LP2, T0 + 2), "750")
        self.market.trade(RequestContext("trader", T0 + 3), 1, "50", 10_000, True)
        self.market.remove_liquidity(RequestContext(LP, T0 + 4), "100")
        positions = self.market.state.liquidity.positions.values()
        assert self.market.total_lp_shares == sum(p.shares for p in positions)

    def test_claim_rewards(self):
        reward = self.market.claim_rewards(RequestContext("operator", T0 + SECONDS_PER_YEAR // 2))
        # 1000 * 10% * 1.1 * 0.5
        assert reward == D("55")

    def test_claim_without_position(self):
        with pytest.raises(ValidationError):
            self.market.claim_rewards(RequestContext("nobody", T0 + 100))

    def test_remove_more_than_held_reverts(self):
        root = self.market.state_root()
        with pytest.raises(MarketArithmeticError):
            self.market.remove_liquidity(RequestContext("operator", T0 + 10), "1000.5")
        assert self.market.state_root() == root

    def test_liquidity_closed_after_lock(self):
        self.market.lock_market(RequestContext("operator", END - 3_600))
        with pytest.raises(PhaseViolation):
            self.market.add_liquidity(RequestContext(LP, END - 3_000), "10")
