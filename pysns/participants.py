"""Funding sale participants and registering their participation."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from retry.api import retry_call

from pysns.backend.base import RefreshResult
from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.exception import AbortedException, PySNSException, RegistrationException
from pysns.hash import Subaccount, participant_subaccount
from pysns.key import Identity, participant_seed, save_seed
from pysns.logging import log_state, logger
from pysns.principal import Principal
from pysns.types import format_tokens

__all__ = ["Participant", "derive_participant", "ParticipantOrchestrator"]

ZERO_TRANSFER_MARKER = "Amount transferred: 0"


@dataclass
class Participant:
    ordinal: int

    identity_seed: bytes = field(repr=False)

    principal: Principal

    sale_subaccount: Subaccount

    seed_file: Optional[Path] = None

    funded: bool = False

    registered: bool = False

    accepted_e8s: int = 0

    error: Optional[str] = None

    @property
    def identity(self) -> Identity:
        return Identity.from_seed(self.identity_seed)


def derive_participant(ordinal: int, prefix: str = "sns-participant-") -> Participant:
    """Participant identity for an ordinal. Pure: the same ordinal always yields the same principal."""
    seed = participant_seed(ordinal, prefix)
    principal = Identity.from_seed(seed).principal
    return Participant(
        ordinal=ordinal,
        identity_seed=seed,
        principal=principal,
        sale_subaccount=participant_subaccount(principal),
    )


class ParticipantOrchestrator:
    """Create, fund and register the sale participants.

    Participants are processed by a bounded thread pool; results are returned in
    ordinal order whatever the completion order. A participant whose registration is
    never confirmed is returned with ``registered=False`` and does not stop the run.
    Funding transfers that fail are fatal. The first fatal error cancels queued participants
    and stops running ones before their next network step.
    """

    def __init__(self, context: ConnectionContext, config: DeploymentConfig):
        self.context = context
        self.config = config
        self.participants = []
        self._abort = threading.Event()

    def fund(self, participant: Participant):
        """Mint ICP to the participant unless an earlier run already did."""
        ctx, cfg = self.context, self.config
        needed = cfg.participation_amount + 2 * cfg.transfer_fee
        balance = ctx.network.balance_of(ctx.ledger, participant.principal)
        if balance >= needed:
            logger.info(
                f"Participant {participant.ordinal} already holds {format_tokens(balance)} ICP"
            )
        else:
            ctx.network.transfer(
                ctx.minter,
                ctx.ledger,
                participant.principal,
                cfg.participant_funding,
                fee=cfg.transfer_fee,
            )
            logger.info(
                f"Minted {format_tokens(cfg.participant_funding)} ICP to participant "
                f"{participant.ordinal} ({participant.principal})"
            )
        participant.funded = True

    def request_ticket(self, participant: Participant, swap: Principal):
        try:
            ticket = self.context.network.new_sale_ticket(
                participant.identity,
                swap,
                self.config.sale_ticket_amount,
                participant.sale_subaccount,
            )
        except PySNSException as e:
            logger.warning(f"Sale ticket for participant {participant.ordinal} not issued: {e}")
            return None
        logger.info(
            f"Participant {participant.ordinal} holds "
            f"{'existing ' if ticket.existing else ''}ticket {ticket.ticket_id}"
        )
        return ticket

    def participate(self, participant: Participant, swap: Principal):
        """Send the participation to the participant's subaccount of the sale canister."""
        ctx, cfg = self.context, self.config
        held = ctx.network.balance_of(ctx.ledger, swap, participant.sale_subaccount)
        if held >= cfg.participation_amount:
            logger.info(
                f"Sale subaccount of participant {participant.ordinal} already holds "
                f"{format_tokens(held)} ICP"
            )
            return
        ctx.network.transfer(
            participant.identity,
            ctx.ledger,
            swap,
            cfg.participation_amount + cfg.transfer_fee,
            to_subaccount=participant.sale_subaccount,
            fee=cfg.transfer_fee,
        )
        held = ctx.network.balance_of(ctx.ledger, swap, participant.sale_subaccount)
        if held < cfg.participation_amount:
            logger.warning(
                f"Sale subaccount of participant {participant.ordinal} holds "
                f"{format_tokens(held)} ICP, less than the participation amount"
            )

    def _refresh_once(self, participant: Participant, swap: Principal) -> RefreshResult:
        try:
            result = self.context.network.refresh_buyer_tokens(
                participant.identity, swap, participant.principal
            )
        except PySNSException as e:
            if ZERO_TRANSFER_MARKER in str(e):
                logger.warning(
                    f"Sale saw no ICP for participant {participant.ordinal}; "
                    f"the transfer may not be visible yet"
                )
            raise
        if result.icp_accepted_participation_e8s > 0:
            return result
        if result.icp_ledger_account_balance_e8s > 0:
            logger.warning(
                f"Sale holds {format_tokens(result.icp_ledger_account_balance_e8s)} ICP for "
                f"participant {participant.ordinal} but accepted none: "
                f"the subaccount derivation does not match the sale's"
            )
        else:
            logger.warning(
                f"Sale sees a zero balance for participant {participant.ordinal}"
            )
        raise RegistrationException(
            f"Participation of participant {participant.ordinal} not accepted", result
        )

    def register(self, participant: Participant, swap: Principal):
        cfg = self.config
        try:
            result = retry_call(
                self._refresh_once,
                fargs=[participant, swap],
                exceptions=PySNSException,
                tries=cfg.refresh_tries,
                delay=cfg.refresh_delay,
                logger=logger,
            )
        except PySNSException as e:
            participant.registered = False
            participant.error = str(e)
            logger.warning(
                f"Participant {participant.ordinal} is not registered after "
                f"{cfg.refresh_tries} attempts: {e}"
            )
            return
        participant.registered = True
        participant.accepted_e8s = result.icp_accepted_participation_e8s
        logger.info(
            f"Participant {participant.ordinal} registered with "
            f"{format_tokens(participant.accepted_e8s)} ICP"
        )

    def _checkpoint(self, ordinal: int):
        if self._abort.is_set():
            raise AbortedException(
                f"Participant {ordinal} stopped after another participant failed"
            )

    def process(self, ordinal: int, swap: Principal) -> Participant:
        try:
            self._checkpoint(ordinal)
            participant = derive_participant(ordinal, self.config.participant_seed_prefix)
            # Persist the seed before any funds move so the identity is always recoverable.
            participant.seed_file = save_seed(
                self.config.output_dir, ordinal, participant.identity_seed
            )
            self._checkpoint(ordinal)
            self.fund(participant)
            self._checkpoint(ordinal)
            self.request_ticket(participant, swap)
            self._checkpoint(ordinal)
            self.participate(participant, swap)
            self._checkpoint(ordinal)
            self.register(participant, swap)
        except Exception:
            self._abort.set()
            raise
        return participant

    @log_state
    def run(self, swap: Principal) -> List[Participant]:
        """Process every participant.

        Raises:
            :class:`InvalidArgumentException`: When the participation amount is outside the
                sale's bounds; raised before any network call.
        """
        cfg = self.config
        cfg.validate_participation(cfg.participation_amount)
        ordinals = range(1, cfg.participant_count + 1)

        self._abort = threading.Event()
        results = {}
        with ThreadPoolExecutor(max_workers=cfg.participant_concurrency) as executor:
            futures = {executor.submit(self.process, i, swap): i for i in ordinals}
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:
                self._abort.set()
                for future in futures:
                    future.cancel()
                raise

        self.participants = [results[i] for i in ordinals]
        registered = sum(p.registered for p in self.participants)
        logger.info(f"{registered}/{len(self.participants)} participants registered")
        return self.participants
