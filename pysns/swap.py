"""Waiting on the sale lifecycle and finalizing the sale."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from pysns.backend.base import DerivedState, FinalizeResult, SaleLifecycle
from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.exception import PollTimeoutException, PySNSException, SaleException
from pysns.logging import log_state, logger
from pysns.polling import poll
from pysns.principal import Principal
from pysns.types import format_tokens

__all__ = ["SaleOpenWaiter", "FinalizationOutcome", "SaleFinalizer"]


class SaleOpenWaiter:
    """Block until the sale reports the Open lifecycle.

    Failed lifecycle queries during polling count as an unknown lifecycle. Once the
    loop sees Open, one more query must confirm it: the lifecycle is not assumed to
    be monotonic.
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
        self.lifecycle = None

    def _lifecycle(self, swap: Principal) -> SaleLifecycle:
        return self.context.network.get_lifecycle(swap)

    def _tolerant_lifecycle(self, swap: Principal) -> SaleLifecycle:
        try:
            return self._lifecycle(swap)
        except PySNSException as e:
            logger.debug(f"Lifecycle query failed: {e}")
            return SaleLifecycle.UNSPECIFIED

    @log_state
    def run(self, swap: Principal) -> SaleLifecycle:
        """Wait for the sale to open.

        Raises:
            :class:`PollTimeoutException`: When the sale does not open within the budget.
            :class:`SaleException`: When the confirming query does not report Open.
        """
        self.lifecycle = self._lifecycle(swap)
        logger.info(f"Sale {swap} lifecycle: {self.lifecycle.name}")
        if self.lifecycle != SaleLifecycle.OPEN:
            budget = self.config.sale_open_poll
            logger.info(f"Waiting up to {budget.max_elapsed:g}s for sale {swap} to open")
            self.lifecycle = poll(
                lambda: self._tolerant_lifecycle(swap),
                lambda lifecycle: lifecycle == SaleLifecycle.OPEN,
                budget,
                f"sale {swap} to open",
                log_every=5,
                sleep=self.sleep,
            )

        self.lifecycle = self._lifecycle(swap)
        if self.lifecycle != SaleLifecycle.OPEN:
            raise SaleException(
                f"Sale {swap} is {self.lifecycle.name} on re-confirmation, expected OPEN"
            )
        logger.info(f"Sale {swap} is open")
        return self.lifecycle


@dataclass(frozen=True)
class FinalizationOutcome:
    lifecycle: SaleLifecycle

    thresholds_met: bool

    finalized: bool

    derived_state: Optional[DerivedState] = None

    result: Optional[FinalizeResult] = None


class SaleFinalizer:
    """Wait for the sale to commit and finalize it.

    Finalization is only ever requested after a lifecycle observation of Committed.
    If the participation thresholds were met but the poll budget runs out first, the
    anomaly is logged and the lifecycle is queried once more; the finalize call is
    made only if that query reports Committed.
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
        self.derived_state = None
        self.lifecycle = None

    def _thresholds_met(self, state: DerivedState) -> bool:
        return state.thresholds_met(
            self.config.min_participants, self.config.min_direct_participation
        )

    def check_derived_state(self, swap: Principal) -> DerivedState:
        state = self.context.network.get_derived_state(swap)
        self.derived_state = state
        logger.info(
            f"Sale {swap}: {state.direct_participant_count or 0}/{self.config.min_participants} "
            f"participants, {format_tokens(state.direct_participation_icp_e8s or 0)}/"
            f"{format_tokens(self.config.min_direct_participation)} ICP"
        )
        return state

    def _observe(self, swap: Principal) -> SaleLifecycle:
        self.lifecycle = self.context.network.get_lifecycle(swap)
        return self.lifecycle

    def _recheck(self, swap: Principal, attempt: int, observation):
        if isinstance(observation, Exception):
            logger.warning(f"Lifecycle query {attempt} failed: {observation}")
        elif observation == SaleLifecycle.OPEN:
            try:
                self.check_derived_state(swap)
            except PySNSException as e:
                logger.warning(f"Derived state query failed: {e}")

    def finalize(self, swap: Principal) -> Optional[FinalizeResult]:
        ctx = self.context
        try:
            result = ctx.network.finalize_swap(ctx.operator, swap)
        except PySNSException as e:
            logger.warning(f"Finalize call on sale {swap} failed: {e}")
            return None
        if result.error_message:
            logger.warning(f"Sale {swap} finalized with error: {result.error_message}")
        else:
            logger.info(f"Sale {swap} finalized")
        return result

    @log_state
    def run(self, swap: Principal) -> FinalizationOutcome:
        state = self.check_derived_state(swap)
        thresholds_met = self._thresholds_met(state)
        if not thresholds_met:
            logger.warning(f"Sale {swap} has not met its participation thresholds yet")

        budget = self.config.sale_commit_poll
        try:
            lifecycle = poll(
                lambda: self._observe(swap),
                lambda lifecycle: lifecycle == SaleLifecycle.COMMITTED,
                budget,
                f"sale {swap} to commit",
                tolerate=(PySNSException,),
                sleep_first=True,
                on_attempt=lambda attempt, obs: self._recheck(swap, attempt, obs),
                sleep=self.sleep,
            )
        except PollTimeoutException as e:
            thresholds_met = thresholds_met or (
                self.derived_state is not None and self._thresholds_met(self.derived_state)
            )
            if not thresholds_met:
                logger.warning(f"{e}. Thresholds not met, sale left unfinalized.")
                return FinalizationOutcome(
                    self.lifecycle or SaleLifecycle.UNSPECIFIED, False, False, self.derived_state
                )
            logger.warning(
                f"{e}. Thresholds were met but the sale has not committed; "
                f"checking the lifecycle once more before finalizing."
            )
            try:
                lifecycle = self._observe(swap)
            except PySNSException as err:
                logger.warning(f"Lifecycle query failed: {err}. Sale left unfinalized.")
                return FinalizationOutcome(
                    SaleLifecycle.UNSPECIFIED, True, False, self.derived_state
                )
            if lifecycle != SaleLifecycle.COMMITTED:
                logger.warning(f"Sale {swap} is {lifecycle.name}, not finalizing.")
                return FinalizationOutcome(lifecycle, True, False, self.derived_state)

        logger.info(f"Sale {swap} committed, finalizing")
        result = self.finalize(swap)
        return FinalizationOutcome(
            lifecycle,
            thresholds_met or self._thresholds_met(self.derived_state),
            result is not None,
            self.derived_state,
            result,
        )
