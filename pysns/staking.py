"""Funding and configuring the governance neuron that submits the proposal."""

import time
from dataclasses import dataclass, replace
from typing import Callable

from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.hash import neuron_stake_subaccount
from pysns.logging import log_state, logger
from pysns.types import format_tokens

__all__ = ["FundedPosition", "StakeFundingStage", "PositionConfigStage"]


@dataclass(frozen=True)
class FundedPosition:
    position_id: int

    lock_seconds: int = 0


class StakeFundingStage:
    """Fund the operator from the minting account and stake a neuron with it.

    Every failure here is fatal. The claim is never retried.
    """

    def __init__(
        self,
        context: ConnectionContext,
        config: DeploymentConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.config = config
        self.sleep = sleep
        self.position = None

    def fund_operator(self) -> int:
        ctx, cfg = self.context, self.config
        amount = cfg.developer_stake + cfg.transfer_fee
        logger.info(
            f"Minting {format_tokens(amount)} ICP to operator {ctx.operator.principal}"
        )
        return ctx.network.transfer(
            ctx.minter, ctx.ledger, ctx.operator.principal, amount, fee=cfg.transfer_fee
        )

    def stake(self) -> int:
        ctx, cfg = self.context, self.config
        subaccount = neuron_stake_subaccount(ctx.operator.principal, cfg.neuron_memo)
        logger.info(
            f"Staking {format_tokens(cfg.developer_stake)} ICP to governance subaccount {subaccount}"
        )
        return ctx.network.transfer(
            ctx.operator,
            ctx.ledger,
            ctx.governance,
            cfg.developer_stake,
            to_subaccount=subaccount,
            fee=cfg.transfer_fee,
        )

    def claim(self) -> int:
        ctx, cfg = self.context, self.config
        neuron_id = ctx.network.claim_neuron(ctx.operator, ctx.governance, cfg.neuron_memo)
        logger.info(f"Claimed neuron {neuron_id} with memo {cfg.neuron_memo}")
        return neuron_id

    @log_state
    def run(self) -> FundedPosition:
        self.fund_operator()
        self.stake()
        # The ledger block must be visible to governance before the claim.
        self.sleep(self.config.claim_delay)
        self.position = FundedPosition(position_id=self.claim())
        return self.position


class PositionConfigStage:
    """Raise a neuron's dissolve delay to the configured target.

    The increase is additive on the governance side, so it is issued exactly once and
    never retried here.
    """

    def __init__(self, context: ConnectionContext, config: DeploymentConfig):
        self.context = context
        self.config = config
        self.position = None

    @log_state
    def run(self, position: FundedPosition) -> FundedPosition:
        ctx, cfg = self.context, self.config
        additional = cfg.dissolve_delay_seconds - position.lock_seconds
        if additional <= 0:
            logger.info(
                f"Neuron {position.position_id} already locked for {position.lock_seconds}s"
            )
            self.position = position
            return position
        ctx.network.increase_dissolve_delay(
            ctx.operator, ctx.governance, position.position_id, additional
        )
        logger.info(
            f"Increased dissolve delay of neuron {position.position_id} by {additional}s"
        )
        self.position = replace(position, lock_seconds=cfg.dissolve_delay_seconds)
        return self.position
