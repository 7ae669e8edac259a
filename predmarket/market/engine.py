"""
Prediction Market Engine

One market: outcome shares traded against a shared collateral pool.

  - Pricing: constant-product curve per outcome with a bounded adjustment
  - Fees: volatility-responsive dynamic fee; a share of every fee accrues
    to the protocol (and to a referrer when one is supplied)
  - Guard: slippage / price-impact / rolling-impact ceilings, MEV withholding
    against the outcome TWAP
  - Commit-reveal: optional two-phase submission of a trade
  - Liquidity: LP shares, tiered incentive rewards, vested IL protection
  - Predictors: streaks, early predictions and accuracy rewards
  - Lifecycle: ACTIVE → LOCKED → RESOLUTION → SETTLED

Every mutating entry point is one atomic step: reentrant calls are rejected,
and the market state is restored if anything raises. Treasury and referral
notifications are fire-and-forget; every other collaborator call is part of
the step and its failure reverts the operation.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterator, List, Optional, Sequence, Union

from ..config import MarketConfig
from ..constants import BPS_DENOMINATOR, MAX_OUTCOMES, MIN_OUTCOMES
from ..exceptions import (
    AuthorizationError,
    MarketArithmeticError,
    PhaseViolation,
    ReentrancyError,
    ReplayError,
    ValidationError,
)
from ..logger import get_logger
from .buffers import PriceImpactBuffer, TWAPObservationLog
from .commit_reveal import (
    CommitRevealBook,
    SignatureLike,
    TradeIntent,
    commitment_hash,
    commitment_key,
)
from .curve import CurveQuote, PricingCurve, outcome_price
from .fees import DynamicFeeModel
from .guard import TradeGuard
from .interfaces import Collaborators
from .lifecycle import MarketPhase, require_phase, transition
from .liquidity import LiquidityBook, LiquidityDeposit, LiquidityWithdrawal, LPPosition
from .numeric import ONE, ZERO, bps_of, q, ratio_bps, to_decimal
from .predictors import PredictorStats, PredictorTracker
from .shares import OutcomeShareLedger
from .state import (
    MarketEvent,
    MarketState,
    RequestContext,
    Role,
    SettlementSnapshot,
    TradeQuote,
    TradeResult,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class _TradePlan:
    """A fully priced trade, computed without touching state."""
    outcome_index: int
    is_buy: bool
    amount_in: Decimal
    fee_bps: Decimal
    fee: Decimal
    quote: CurveQuote
    price_before: Decimal
    price_after: Decimal           # after withholding is credited back
    move_bps: int
    withheld: Decimal
    amount_out: Decimal


class PredictionMarket:
    """
    A single prediction market.

    Implements TradingCapability, ShareLedgerCapability and
    LiquidityProviderCapability.
    """

    def __init__(
        self,
        market_id: str,
        name: str,
        outcomes: Sequence[str],
        end_time: int,
        created_at: int,
        operator: str,
        config: Optional[MarketConfig] = None,
        collaborators: Optional[Collaborators] = None,
    ):
        outcomes = list(outcomes)
        if not MIN_OUTCOMES <= len(outcomes) <= MAX_OUTCOMES:
            raise ValidationError(
                f"Market needs {MIN_OUTCOMES}-{MAX_OUTCOMES} outcomes, got {len(outcomes)}"
            )
        if len(set(outcomes)) != len(outcomes) or any(not o for o in outcomes):
            raise ValidationError("Outcome names must be unique and non-empty")
        if end_time <= created_at:
            raise ValidationError("End time must be after creation time")
        if not operator:
            raise ValidationError("Operator address is required")

        self.config = config or MarketConfig()
        self.collaborators = collaborators or Collaborators()
        cfg = self.config

        self.curve = PricingCurve(
            adjustment_bps=cfg.curve.adjustment_bps,
            min_price=cfg.curve.min_price,
            max_price=cfg.curve.max_price,
        )
        self.guard = TradeGuard(
            max_price_impact_bps=cfg.guard.max_price_impact_bps,
            mev_withhold_rate_bps=cfg.guard.mev_withhold_rate_bps,
            max_mev_withhold_bps=cfg.guard.max_mev_withhold_bps,
        )

        n = len(outcomes)
        self.state = MarketState(
            id=market_id,
            name=name,
            outcomes=outcomes,
            created_at=created_at,
            end_time=end_time,
            phase=MarketPhase.ACTIVE,
            fee=DynamicFeeModel(
                base_fee_bps=cfg.fees.base_fee_bps,
                max_fee_bps=cfg.fees.max_fee_bps,
                volatility_window=cfg.fees.volatility_window,
            ),
            shares=OutcomeShareLedger(n),
            liquidity=LiquidityBook(
                tiers=cfg.liquidity.tiers,
                protection_period=cfg.liquidity.il_protection_period,
                max_protection_bps=cfg.liquidity.max_il_protection_bps,
            ),
            predictors=PredictorTracker(
                streak_window=cfg.predictors.streak_window,
                early_window=cfg.predictors.early_window,
                reward_rate_bps=cfg.predictors.accuracy_reward_rate_bps,
                early_bonus_bps=cfg.predictors.early_bonus_bps,
                streak_bonus_bps=cfg.predictors.streak_bonus_bps,
                max_streak_bonus_bps=cfg.predictors.max_streak_bonus_bps,
            ),
            commitments=CommitRevealBook(cfg.commit_reveal.min_reveal_delay),
            impact_buffers=[PriceImpactBuffer(cfg.guard.impact_buffer_size) for _ in range(n)],
            twap_logs=[TWAPObservationLog(cfg.guard.twap_capacity) for _ in range(n)],
            reserves=[ZERO] * n,
        )
        self.state.roles[Role.OPERATOR].add(operator)
        self._in_flight = False

        logger.info(
            "Market %s created: %r outcomes=%s end=%d operator=%s",
            market_id, name, outcomes, end_time, operator,
        )

    # =====================================================================
    #  Properties
    # =====================================================================

    @property
    def market_id(self) -> str:
        return self.state.id

    @property
    def phase(self) -> MarketPhase:
        return self.state.phase

    @property
    def outcome_count(self) -> int:
        return self.state.outcome_count

    @property
    def pool_balance(self) -> Decimal:
        return self.state.pool_balance

    @property
    def reserves(self) -> List[Decimal]:
        return list(self.state.reserves)

    @property
    def protocol_fees(self) -> Decimal:
        return self.state.protocol_fees

    @property
    def events(self) -> List[MarketEvent]:
        return list(self.state.events)

    # =====================================================================
    #  Atomic step
    # =====================================================================

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[MarketState]:
        if self._in_flight:
            raise ReentrancyError(f"{operation} entered while another operation is in flight")
        self._in_flight = True
        snapshot = self.state.take_snapshot()
        try:
            yield self.state
        except Exception as e:
            self.state.restore_snapshot(snapshot)
            logger.debug("Market %s: %s reverted: %s", self.state.id, operation, e)
            raise
        finally:
            self._in_flight = False

    def _forward(self, what: str, call: Callable[..., Any], *args: Any) -> None:
        """Fire-and-forget collaborator call: failures are logged, never raised."""
        try:
            call(*args)
        except Exception as e:
            logger.error("Market %s: %s failed: %s", self.state.id, what, e)

    def _emit(self, kind: str, ctx: RequestContext, **data: Any) -> None:
        self.state.events.append(
            MarketEvent(kind=kind, actor=ctx.caller, timestamp=ctx.timestamp, data=data)
        )

    # =====================================================================
    #  Validation helpers
    # =====================================================================

    @staticmethod
    def _require_caller(ctx: RequestContext) -> None:
        if not ctx.caller:
            raise AuthorizationError("Request has no caller")

    def _require_role(self, ctx: RequestContext, role: Role) -> None:
        self._require_caller(ctx)
        if ctx.caller not in self.state.roles[role]:
            raise AuthorizationError(f"{ctx.caller} lacks the {role.value} role")

    def _check_outcome(self, outcome_index: int) -> None:
        if not isinstance(outcome_index, int) or not 0 <= outcome_index < self.state.outcome_count:
            raise ValidationError(f"Invalid outcome index {outcome_index}")

    @staticmethod
    def _amount(value: Union[Decimal, int, str], what: str = "Amount") -> Decimal:
        try:
            amount = q(to_decimal(value))
        except (TypeError, InvalidOperation):
            raise ValidationError(f"{what} must be a decimal string, int or Decimal")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError(f"{what} must be positive")
        return amount

    def _require_trading(self, ctx: RequestContext, operation: str) -> None:
        require_phase(self.state.phase, (MarketPhase.ACTIVE,), operation)
        if ctx.timestamp >= self.state.end_time:
            raise PhaseViolation(f"{operation}: trading closed at {self.state.end_time}")

    # =====================================================================
    #  Prices
    # =====================================================================

    def _spot(self, outcome_index: int) -> Decimal:
        s = self.state
        return outcome_price(s.pool_balance, s.reserves[outcome_index])

    def _spot_prices(self) -> List[Decimal]:
        return [self._spot(i) for i in range(self.state.outcome_count)]

    def _record_prices(self, now: int) -> None:
        for i, log in enumerate(self.state.twap_logs):
            log.record(self._spot(i), now)

    def _reference_price(self, outcome_index: int, now: int, fallback: Decimal) -> Decimal:
        log = self.state.twap_logs[outcome_index]
        if len(log) == 0:
            return fallback
        return log.twap(now)

    def get_current_price(self, outcome_index: int) -> Decimal:
        """Spot price of an outcome: pool / (pool + reserve)."""
        self._check_outcome(outcome_index)
        return self._spot(outcome_index)

    def get_twap(self, outcome_index: int, now: int) -> Decimal:
        """
        Time-weighted average price of an outcome as of `now`. The newest
        observation is weighted by the time elapsed since it up to `now`.

        Raises:
            MarketArithmeticError: no observations recorded yet
        """
        self._check_outcome(outcome_index)
        return self.state.twap_logs[outcome_index].twap(now)

    # =====================================================================
    #  Trading
    # =====================================================================

    def _plan_trade(self, outcome_index: int, amount: Decimal, is_buy: bool, now: int) -> _TradePlan:
        s = self.state
        fee_bps, fee = s.fee.fee_for(amount, now)
        after_fee = amount - fee
        if after_fee <= 0:
            raise ValidationError("Amount does not cover the trading fee")

        price_before = self._spot(outcome_index)
        pool, reserve = s.pool_balance, s.reserves[outcome_index]
        if is_buy:
            quote = self.curve.quote(pool, reserve, after_fee, True)
            pool, reserve = pool + amount, reserve - quote.output
        else:
            quote = self.curve.quote(reserve, pool, after_fee, False)
            pool, reserve = pool - quote.output, reserve + amount

        reference = self._reference_price(outcome_index, now, price_before)
        mev = self.guard.mev_withholding(
            outcome_index, quote.output, reference, outcome_price(pool, reserve),
        )
        if is_buy:
            reserve += mev.withheld
        else:
            pool += mev.withheld
        price_after = outcome_price(pool, reserve)

        return _TradePlan(
            outcome_index=outcome_index,
            is_buy=is_buy,
            amount_in=amount,
            fee_bps=fee_bps,
            fee=fee,
            quote=quote,
            price_before=price_before,
            price_after=price_after,
            move_bps=ratio_bps(abs(price_after - price_before), price_before),
            withheld=mev.withheld,
            amount_out=mev.output_to_trader,
        )

    def quote_trade(
        self,
        ctx: RequestContext,
        outcome_index: int,
        amount: Union[Decimal, int, str],
        is_buy: bool = True,
    ) -> TradeQuote:
        """Price a trade at `ctx.timestamp` without executing it."""
        self._check_outcome(outcome_index)
        amount = self._amount(amount)
        if self.state.pool_balance <= 0:
            raise MarketArithmeticError("Market has no liquidity")
        plan = self._plan_trade(outcome_index, amount, is_buy, ctx.timestamp)
        report = self.guard.evaluate(plan.quote, self.state.impact_buffers[outcome_index])
        return TradeQuote(
            outcome_index=outcome_index,
            is_buy=is_buy,
            amount_in=amount,
            fee_bps=plan.fee_bps,
            fee=plan.fee,
            amount_out=plan.amount_out,
            withheld=plan.withheld,
            slippage_bps=report.slippage_bps,
            price_impact_bps=report.price_impact_bps,
            rolling_impact_bps=report.rolling_impact_bps,
            price_before=plan.price_before,
            price_after=plan.price_after,
        )

    def trade(
        self,
        ctx: RequestContext,
        outcome_index: int,
        amount: Union[Decimal, int, str],
        max_slippage_bps: int,
        is_buy: bool = True,
    ) -> TradeResult:
        """
        Buy (collateral in, shares out) or sell (shares in, collateral out)
        one outcome.

        Raises:
            PhaseViolation: market not ACTIVE or past its end time
            ValidationError: bad outcome / amount, or a guard ceiling exceeded
            MarketArithmeticError: selling more shares than held
        """
        with self._atomic("trade"):
            return self._execute_trade(ctx, outcome_index, amount, max_slippage_bps, is_buy)

    def _execute_trade(
        self,
        ctx: RequestContext,
        outcome_index: int,
        amount: Union[Decimal, int, str],
        max_slippage_bps: int,
        is_buy: bool,
    ) -> TradeResult:
        s = self.state
        now = ctx.timestamp
        self._require_caller(ctx)
        self._require_trading(ctx, "trade")
        self._check_outcome(outcome_index)
        amount = self._amount(amount)
        if not 0 <= max_slippage_bps <= BPS_DENOMINATOR:
            raise ValidationError(f"max_slippage_bps must be within 0-{BPS_DENOMINATOR}")
        if s.pool_balance <= 0:
            raise MarketArithmeticError("Market has no liquidity")

        plan = self._plan_trade(outcome_index, amount, is_buy, now)
        buffer = s.impact_buffers[outcome_index]
        report = self.guard.check(plan.quote, max_slippage_bps, buffer)

        # -- Apply balances --
        if is_buy:
            s.pool_balance += amount
            s.reserves[outcome_index] += plan.withheld - plan.quote.output
            s.shares.mint(outcome_index, ctx.caller, plan.amount_out)
            fee_value = plan.fee
            volume = amount
        else:
            s.shares.burn(outcome_index, ctx.caller, amount)
            s.reserves[outcome_index] += amount
            s.pool_balance += plan.withheld - plan.quote.output
            # Fee shares stay in the reserve; value them at the execution price
            fee_value = q(plan.fee * plan.quote.output / plan.quote.amount_in)
            volume = plan.quote.output

        # -- Protocol and referral fee accrual --
        cfg = self.config.fees
        protocol_fee = bps_of(fee_value, cfg.treasury_share_bps)
        referral_fee = ZERO
        referrer = ctx.referrer if ctx.referrer and ctx.referrer != ctx.caller else None
        if referrer is not None:
            referral_fee = bps_of(fee_value, cfg.referral_share_bps)
        s.protocol_fees += protocol_fee + referral_fee

        # -- Rolling statistics --
        buffer.record(Decimal(report.price_impact_bps))
        s.twap_logs[outcome_index].record(plan.price_after, now)
        s.fee.on_trade(now, plan.move_bps)
        s.total_volume += volume

        if is_buy:
            s.predictors.record_buy(ctx.caller, outcome_index, amount, now, s.created_at)

        # -- Collaborators --
        if protocol_fee > 0:
            self._forward("treasury fee", self.collaborators.treasury.record_fee, s.id, protocol_fee)
        if referral_fee > 0:
            self._forward(
                "referral fee", self.collaborators.referrals.record_referral_fee,
                referrer, ctx.caller, referral_fee,
            )
        self.collaborators.reputation.update_reputation(ctx.caller, ZERO, 0, 1)
        self.collaborators.incentives.notify_metric_history(s.total_volume, s.fee.cumulative_volatility)

        self._emit(
            "Trade", ctx,
            outcome=outcome_index, is_buy=is_buy, amount_in=amount, amount_out=plan.amount_out,
            fee=plan.fee, withheld=plan.withheld, price=plan.price_after,
        )
        logger.debug(
            "Market %s: %s %s outcome %d in=%s out=%s fee=%s (%s bp) price %s -> %s",
            s.id, ctx.caller, "buy" if is_buy else "sell", outcome_index, amount,
            plan.amount_out, plan.fee, plan.fee_bps, plan.price_before, plan.price_after,
        )

        return TradeResult(
            trader=ctx.caller,
            outcome_index=outcome_index,
            is_buy=is_buy,
            amount_in=amount,
            fee_bps=plan.fee_bps,
            fee=plan.fee,
            amount_out=plan.amount_out,
            withheld=plan.withheld,
            slippage_bps=report.slippage_bps,
            price_impact_bps=report.price_impact_bps,
            price_before=plan.price_before,
            price_after=plan.price_after,
            protocol_fee=protocol_fee,
            referral_fee=referral_fee,
        )

    # =====================================================================
    #  Commit-reveal
    # =====================================================================

    def commitment_for(self, intent: TradeIntent) -> bytes:
        """The commitment a trader should submit for `intent` on this market."""
        return commitment_hash(self.state.id, intent)

    def commit_trade(self, ctx: RequestContext, commitment: Union[bytes, str]) -> None:
        """
        Raises:
            ReplayError: the commitment was already submitted
        """
        with self._atomic("commit_trade") as s:
            self._require_caller(ctx)
            self._require_trading(ctx, "commit_trade")
            s.commitments.commit(ctx.caller, commitment, ctx.timestamp)
            self._emit("TradeCommitted", ctx, commitment=commitment_key(commitment))

    def reveal_trade(
        self,
        ctx: RequestContext,
        outcome_index: int,
        amount: Union[Decimal, int, str],
        max_slippage_bps: int,
        is_buy: bool,
        min_timestamp: int,
        max_timestamp: int,
        nonce: int,
        signature: SignatureLike,
    ) -> TradeResult:
        """
        Reveal a committed trade and execute it through the ordinary path.

        The commitment is marked revealed only if the trade succeeds.

        Raises:
            ValidationError: malformed parameters, no matching commitment,
                too early, outside window
            AuthorizationError: wrong caller or signature
            ReplayError: commitment already revealed
        """
        with self._atomic("reveal_trade") as s:
            self._require_caller(ctx)
            self._check_outcome(outcome_index)
            if not isinstance(max_slippage_bps, int) or not 0 <= max_slippage_bps <= BPS_DENOMINATOR:
                raise ValidationError(f"max_slippage_bps must be within 0-{BPS_DENOMINATOR}")
            intent = TradeIntent(
                outcome_index=outcome_index,
                amount=self._amount(amount),
                max_slippage_bps=max_slippage_bps,
                is_buy=is_buy,
                min_timestamp=min_timestamp,
                max_timestamp=max_timestamp,
                nonce=nonce,
            )
            key = s.commitments.verify_reveal(ctx.caller, s.id, intent, signature, ctx.timestamp)
            result = self._execute_trade(ctx, outcome_index, intent.amount, max_slippage_bps, is_buy)
            s.commitments.mark_revealed(key, ctx.timestamp)
            self._emit("TradeRevealed", ctx, commitment=key)
            return result

    # =====================================================================
    #  Liquidity
    # =====================================================================

    def _incentive_rate(self) -> int:
        return int(self.collaborators.incentives.get_liquidity_incentive_rate())

    def _settlement_time(self, now: int) -> int:
        settlement = self.state.settlement
        return min(now, settlement.settled_at) if settlement is not None else now

    def add_liquidity(self, ctx: RequestContext, amount: Union[Decimal, int, str]) -> LiquidityDeposit:
        """
        Deposit collateral. Prices are unchanged by a deposit.

        Returns:
            The deposit record, including the LP shares minted
        """
        with self._atomic("add_liquidity") as s:
            self._require_caller(ctx)
            require_phase(s.phase, (MarketPhase.ACTIVE,), "add_liquidity")
            amount = self._amount(amount)
            rate = self._incentive_rate()

            book = s.liquidity
            additions = book.reserve_additions(amount, s.lp_pool, s.pool_balance, s.reserves)
            new_pool = s.pool_balance + amount
            entry_prices = [outcome_price(new_pool, r + a) for r, a in zip(s.reserves, additions)]

            deposit = book.add(
                ctx.caller, amount, s.lp_pool, s.pool_balance, s.reserves,
                entry_prices, ctx.timestamp, rate,
            )
            s.pool_balance = new_pool
            for i, added in enumerate(deposit.reserve_additions):
                s.reserves[i] += added
            self._record_prices(ctx.timestamp)

            self.collaborators.reputation.update_reputation(ctx.caller, amount, 0, 1)
            self._emit(
                "LiquidityAdded", ctx,
                amount=amount, shares=deposit.shares_minted, tier=deposit.tier,
            )
            logger.info(
                "Market %s: %s added %s liquidity (%s shares, tier %d)",
                s.id, ctx.caller, amount, deposit.shares_minted, deposit.tier,
            )
            return deposit

    def remove_liquidity(self, ctx: RequestContext, shares: Union[Decimal, int, str]) -> LiquidityWithdrawal:
        """
        Burn LP shares. Pays principal + IL protection + unclaimed reward in
        collateral; the released outcome reserves are credited to the
        provider's share balances.
        """
        with self._atomic("remove_liquidity") as s:
            self._require_caller(ctx)
            require_phase(s.phase, (MarketPhase.ACTIVE,), "remove_liquidity")
            shares = self._amount(shares, "Share amount")
            rate = self._incentive_rate()

            withdrawal = s.liquidity.remove(
                ctx.caller, shares, s.lp_pool, s.reserves, self._spot_prices(),
                ctx.timestamp, rate,
            )
            s.pool_balance -= withdrawal.principal
            for i, released in enumerate(withdrawal.reserve_releases):
                s.reserves[i] -= released
                s.shares.mint(i, ctx.caller, released)
            if s.pool_balance > 0:
                self._record_prices(ctx.timestamp)

            self.collaborators.reputation.update_reputation(
                ctx.caller, -withdrawal.liquidity_removed, 0, 1,
            )
            self._emit(
                "LiquidityRemoved", ctx,
                shares=shares, principal=withdrawal.principal,
                il_protection=withdrawal.il_protection, reward=withdrawal.reward,
            )
            logger.info(
                "Market %s: %s removed %s shares, payout %s (protection %s, reward %s)",
                s.id, ctx.caller, shares, withdrawal.payout,
                withdrawal.il_protection, withdrawal.reward,
            )
            return withdrawal

    def claim_rewards(self, ctx: RequestContext) -> Decimal:
        """
        Pay the caller's unclaimed LP incentive reward. Once SETTLED this
        also redeems the caller's LP shares for their part of the residual pot.
        """
        with self._atomic("claim_rewards") as s:
            self._require_caller(ctx)
            position = s.liquidity.position(ctx.caller)
            if position is None:
                raise ValidationError(f"No liquidity position for {ctx.caller}")

            reward = s.liquidity.claim(ctx.caller, self._settlement_time(ctx.timestamp), self._incentive_rate())
            residual_share = ZERO
            if s.phase == MarketPhase.SETTLED and position.shares > 0:
                settlement = s.settlement
                residual_share = q(settlement.lp_residual * position.shares / settlement.total_lp_shares)
                residual_share = min(residual_share, s.pool_balance)
                s.liquidity.burn_all(ctx.caller)
                s.pool_balance -= residual_share

            total = reward + residual_share
            if total <= 0:
                raise ValidationError("Nothing to claim")
            self._emit("RewardsClaimed", ctx, reward=reward, residual=residual_share)
            logger.info("Market %s: %s claimed rewards %s", s.id, ctx.caller, total)
            return total

    # =====================================================================
    #  Lifecycle
    # =====================================================================

    def grant_role(self, ctx: RequestContext, role: Role, account: str) -> None:
        with self._atomic("grant_role") as s:
            self._require_role(ctx, Role.OPERATOR)
            if not account:
                raise ValidationError("Account is required")
            s.roles[role].add(account)
            self._emit("RoleGranted", ctx, role=role.value, account=account)

    def has_role(self, role: Role, account: str) -> bool:
        return account in self.state.roles[role]

    def lock_market(self, ctx: RequestContext) -> None:
        with self._atomic("lock_market") as s:
            self._require_role(ctx, Role.OPERATOR)
            require_phase(s.phase, (MarketPhase.ACTIVE,), "lock_market")
            opens_at = s.end_time - self.config.lifecycle.lock_window
            if ctx.timestamp < opens_at:
                raise PhaseViolation(f"lock_market not allowed before {opens_at}")
            s.phase = transition(s.phase, MarketPhase.LOCKED)
            self._emit("MarketLocked", ctx)
            logger.info("Market %s locked", s.id)

    def start_resolution(self, ctx: RequestContext) -> None:
        with self._atomic("start_resolution") as s:
            self._require_role(ctx, Role.OPERATOR)
            require_phase(s.phase, (MarketPhase.LOCKED,), "start_resolution")
            if ctx.timestamp < s.end_time:
                raise PhaseViolation(f"start_resolution not allowed before {s.end_time}")
            s.phase = transition(s.phase, MarketPhase.RESOLUTION)
            self._emit("ResolutionStarted", ctx)
            logger.info("Market %s entered resolution", s.id)

    def request_resolution(self, ctx: RequestContext) -> str:
        """
        Ask the outcome oracle for the result. Exactly one request may be
        pending at a time.
        """
        with self._atomic("request_resolution") as s:
            self._require_role(ctx, Role.OPERATOR)
            require_phase(s.phase, (MarketPhase.RESOLUTION,), "request_resolution")
            if s.pending_request_id is not None:
                raise PhaseViolation(f"Resolution request {s.pending_request_id} already pending")
            request_id = self.collaborators.oracle.request_outcome(s.id)
            if not request_id:
                raise ValidationError("Oracle returned an empty request id")
            s.pending_request_id = request_id
            self._emit("ResolutionRequested", ctx, request_id=request_id)
            logger.info("Market %s: outcome requested (%s)", s.id, request_id)
            return request_id

    def fulfill_resolution(self, ctx: RequestContext, request_id: str, winning_outcome: int) -> SettlementSnapshot:
        """
        Deliver the resolved outcome and settle the market.

        Raises:
            AuthorizationError: caller lacks the oracle role
            ReplayError: unknown or already fulfilled request id
        """
        with self._atomic("fulfill_resolution") as s:
            self._require_role(ctx, Role.ORACLE)
            if request_id in s.fulfilled_requests:
                raise ReplayError(f"Resolution request {request_id} already fulfilled")
            if request_id != s.pending_request_id:
                raise ReplayError(f"Unknown resolution request {request_id}")
            require_phase(s.phase, (MarketPhase.RESOLUTION,), "fulfill_resolution")
            self._check_outcome(winning_outcome)

            s.fulfilled_requests.add(request_id)
            s.pending_request_id = None
            s.winning_outcome = winning_outcome
            s.phase = transition(s.phase, MarketPhase.SETTLED)

            pot = max(ZERO, s.lp_pool)
            supply = s.shares.total_supply(winning_outcome)
            rate = min(ONE, q(pot / supply)) if supply > 0 else ZERO
            s.settlement = SettlementSnapshot(
                winning_outcome=winning_outcome,
                settled_at=ctx.timestamp,
                pot=pot,
                winning_supply=supply,
                redemption_rate=rate,
                lp_residual=max(ZERO, pot - q(supply * rate)),
                total_lp_shares=s.liquidity.total_shares,
            )

            rewards = s.predictors.settle(winning_outcome, s.shares.holders(winning_outcome))
            for trader, reward in rewards.items():
                s.journal.remember(s.accuracy_rewards, trader)
                s.accuracy_rewards[trader] = s.accuracy_rewards.get(trader, ZERO) + reward
                self.collaborators.reputation.update_reputation(trader, ZERO, 1, 0)

            self._emit(
                "MarketSettled", ctx,
                request_id=request_id, winning_outcome=winning_outcome,
                redemption_rate=rate, predictors_rewarded=len(rewards),
            )
            logger.info(
                "Market %s settled on outcome %d (%s): pot %s, %s per share",
                s.id, winning_outcome, s.outcomes[winning_outcome], pot, rate,
            )
            return s.settlement

    def claim_winnings(self, ctx: RequestContext) -> Decimal:
        """Redeem the caller's winning shares and accuracy reward."""
        with self._atomic("claim_winnings") as s:
            self._require_caller(ctx)
            require_phase(s.phase, (MarketPhase.SETTLED,), "claim_winnings")
            winner = s.winning_outcome
            balance = s.shares.balance_of(winner, ctx.caller)
            redemption = ZERO
            if balance > 0:
                redemption = min(q(balance * s.settlement.redemption_rate), s.pool_balance)
                s.shares.burn(winner, ctx.caller, balance)
                s.pool_balance -= redemption
            s.journal.remember(s.accuracy_rewards, ctx.caller)
            accuracy_reward = s.accuracy_rewards.pop(ctx.caller, ZERO)

            total = redemption + accuracy_reward
            if total <= 0:
                raise ValidationError("Nothing to claim")
            self._emit(
                "WinningsClaimed", ctx,
                shares=balance, redemption=redemption, accuracy_reward=accuracy_reward,
            )
            logger.info("Market %s: %s claimed winnings %s", s.id, ctx.caller, total)
            return total

    def skim_protocol_fees(self, ctx: RequestContext) -> Decimal:
        """Withdraw the accrued protocol fees from the pool."""
        with self._atomic("skim_protocol_fees") as s:
            self._require_role(ctx, Role.TREASURY)
            amount = min(s.protocol_fees, s.pool_balance)
            if amount <= 0:
                raise ValidationError("No protocol fees accrued")
            s.pool_balance -= amount
            s.protocol_fees = ZERO
            self._emit("ProtocolFeesSkimmed", ctx, amount=amount)
            logger.info("Market %s: %s protocol fees skimmed by %s", s.id, amount, ctx.caller)
            return amount

    # =====================================================================
    #  Query interface (read-only)
    # =====================================================================

    def balance_of(self, outcome_index: int, holder: str) -> Decimal:
        return self.state.shares.balance_of(outcome_index, holder)

    def total_supply(self, outcome_index: int) -> Decimal:
        return self.state.shares.total_supply(outcome_index)

    def lp_position(self, provider: str) -> Optional[LPPosition]:
        return self.state.liquidity.position(provider)

    @property
    def total_lp_shares(self) -> Decimal:
        return self.state.liquidity.total_shares

    def get_predictor_stats(self, trader: str) -> PredictorStats:
        stats = self.state.predictors.get(trader)
        return copy.deepcopy(stats) if stats is not None else PredictorStats(trader=trader)

    def current_fee_bps(self, now: int) -> Decimal:
        return self.state.fee.fee_bps(now)

    def state_root(self) -> str:
        return self.state.compute_root()

    def get_stats(self) -> dict:
        s = self.state
        return {
            "id": s.id,
            "name": s.name,
            "phase": s.phase.name,
            "outcomes": list(s.outcomes),
            "prices": [str(p) for p in self._spot_prices()] if s.pool_balance > 0 else [],
            "pool_balance": str(s.pool_balance),
            "reserves": [str(r) for r in s.reserves],
            "protocol_fees": str(s.protocol_fees),
            "total_volume": str(s.total_volume),
            "total_lp_shares": str(s.liquidity.total_shares),
            "winning_outcome": s.winning_outcome,
            "events": len(s.events),
        }
