"""Immutable configuration of a deployment run."""

from dataclasses import dataclass, field
from typing import Optional

from pysns.exception import InvalidArgumentException, InvalidDataException
from pysns.principal import Principal

__all__ = [
    "GOVERNANCE_CANISTER_ID",
    "LEDGER_CANISTER_ID",
    "SNSW_CANISTER_ID",
    "ICP_TRANSFER_FEE",
    "PollBudget",
    "DeploymentConfig",
]

GOVERNANCE_CANISTER_ID = "rrkah-fqaaa-aaaaa-aaaaq-cai"
LEDGER_CANISTER_ID = "ryjl3-tyaaa-aaaaa-aaaba-cai"
SNSW_CANISTER_ID = "qaa6y-5yaaa-aaaaa-aaafa-cai"

ICP_TRANSFER_FEE = 10_000

EIGHT_YEARS_SECONDS = 252_460_800


@dataclass(frozen=True)
class PollBudget:
    """How often and how long to wait for a remote state transition."""

    attempts: int

    interval: float

    @property
    def max_elapsed(self) -> float:
        return self.attempts * self.interval


@dataclass(frozen=True)
class DeploymentConfig:
    """Everything the deployment pipeline needs besides the network connection.

    Amounts are in e8s. The defaults target a local replica with the NNS installed.
    """

    governance_canister_id: str = GOVERNANCE_CANISTER_ID

    ledger_canister_id: str = LEDGER_CANISTER_ID

    snsw_canister_id: str = SNSW_CANISTER_ID

    developer_stake: int = 100_000_000_000_000
    """Stake of the developer neuron that submits the proposal."""

    transfer_fee: int = ICP_TRANSFER_FEE

    neuron_memo: int = 1

    dissolve_delay_seconds: int = EIGHT_YEARS_SECONDS

    claim_delay: float = 2.0
    """Seconds to let the ledger settle before claiming the neuron."""

    participant_count: int = 5

    participant_seed_prefix: str = "sns-participant-"

    participation_amount: int = 100_000_000

    participant_buffer: int = 1_000_000_000
    """Extra ICP minted to each participant on top of the participation amount."""

    max_sale_ticket_amount: int = 1_000_000_000

    participant_concurrency: int = 3

    min_participants: int = 5

    min_participant_amount: int = 100_000_000

    max_participant_amount: Optional[int] = 1_000_000_000

    min_direct_participation: int = 500_000_000

    proposal_title: str = "Deploy AcmeDAO SNS"

    proposal_poll: PollBudget = field(default_factory=lambda: PollBudget(60, 10.0))

    sale_open_poll: PollBudget = field(default_factory=lambda: PollBudget(300, 2.0))

    sale_commit_poll: PollBudget = field(default_factory=lambda: PollBudget(30, 1.0))

    refresh_tries: int = 3

    refresh_delay: float = 3.0

    output_dir: str = "generated"

    @property
    def governance(self) -> Principal:
        return Principal.from_str(self.governance_canister_id)

    @property
    def ledger(self) -> Principal:
        return Principal.from_str(self.ledger_canister_id)

    @property
    def snsw(self) -> Principal:
        return Principal.from_str(self.snsw_canister_id)

    @property
    def participant_funding(self) -> int:
        """ICP minted to each participant: participation, buffer and the outgoing fee."""
        return self.participation_amount + self.participant_buffer + self.transfer_fee

    @property
    def sale_ticket_amount(self) -> int:
        return min(self.participation_amount, self.max_sale_ticket_amount)

    def validate_participation(self, amount: int):
        """Reject a participation amount the sale would refuse, before any call is made.

        Raises:
            :class:`InvalidArgumentException`: When the amount is outside the per-participant bounds.
        """
        if amount < self.min_participant_amount:
            raise InvalidArgumentException(
                f"Participation amount {amount} e8s is below the minimum of "
                f"{self.min_participant_amount} e8s"
            )
        if self.max_participant_amount is not None and amount > self.max_participant_amount:
            raise InvalidArgumentException(
                f"Participation amount {amount} e8s is above the maximum of "
                f"{self.max_participant_amount} e8s"
            )

    def validate(self):
        """Check the whole configuration locally.

        Raises:
            :class:`InvalidArgumentException`: On the first inconsistent value.
        """
        for name in ("governance_canister_id", "ledger_canister_id", "snsw_canister_id"):
            try:
                Principal.from_str(getattr(self, name))
            except InvalidDataException as e:
                raise InvalidArgumentException(f"Invalid {name}: {e}") from e
        if self.developer_stake <= 0 or self.transfer_fee < 0:
            raise InvalidArgumentException("Stake must be positive and fee non-negative")
        if not 0 <= self.neuron_memo < 2**64:
            raise InvalidArgumentException(f"Neuron memo out of range: {self.neuron_memo}")
        if not 0 < self.dissolve_delay_seconds < 2**32:
            raise InvalidArgumentException(
                f"Dissolve delay must fit in u32 seconds: {self.dissolve_delay_seconds}"
            )
        if self.participant_count < 1 or self.participant_concurrency < 1:
            raise InvalidArgumentException("Participant count and concurrency must be positive")
        for budget_name in ("proposal_poll", "sale_open_poll", "sale_commit_poll"):
            budget = getattr(self, budget_name)
            if budget.attempts < 1 or budget.interval < 0:
                raise InvalidArgumentException(f"Invalid poll budget {budget_name}: {budget}")
        if self.refresh_tries < 1:
            raise InvalidArgumentException("Refresh tries must be at least 1")
        self.validate_participation(self.participation_amount)
