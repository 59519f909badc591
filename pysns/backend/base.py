"""Defines interfaces for client codes to interact (query/update) with the network's canisters."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from pysns.exception import MissingEndpointException
from pysns.hash import Subaccount
from pysns.key import Identity
from pysns.principal import Principal
from pysns.types import JsonDict, typechecked

__all__ = [
    "SaleLifecycle",
    "DeployedServiceSet",
    "DerivedState",
    "SaleTicket",
    "RefreshResult",
    "FinalizeResult",
    "NeuronInfo",
    "SnsNeuron",
    "NetworkContext",
]


class SaleLifecycle(IntEnum):
    """Lifecycle codes reported by the sale (swap) canister."""

    UNSPECIFIED = 0
    PENDING = 1
    OPEN = 2
    COMMITTED = 3
    ABORTED = 4
    ADOPTED = 5

    @classmethod
    def from_code(cls, code: Optional[int]) -> SaleLifecycle:
        try:
            return cls(code or 0)
        except ValueError:
            return cls.UNSPECIFIED


@dataclass(frozen=True)
class DeployedServiceSet:
    """Canister ids of one deployed service nervous system."""

    root: Optional[Principal] = None

    governance: Optional[Principal] = None

    index: Optional[Principal] = None

    swap: Optional[Principal] = None

    ledger: Optional[Principal] = None

    FIELDS = ("root", "governance", "index", "swap", "ledger")

    def require(self, *names: str) -> Tuple[Principal, ...]:
        """Return the requested canister ids, all of which must be present.

        Raises:
            :class:`MissingEndpointException`: When any of them is absent.
        """
        missing = [n for n in names if getattr(self, n) is None]
        if missing:
            raise MissingEndpointException(
                f"Deployed service set is missing canister ids: {', '.join(missing)}"
            )
        return tuple(getattr(self, n) for n in names)

    def to_primitive(self) -> Dict[str, Optional[str]]:
        return {
            f"{n}_canister_id": (str(getattr(self, n)) if getattr(self, n) else None)
            for n in self.FIELDS
        }

    @classmethod
    def from_primitive(cls, values: JsonDict) -> DeployedServiceSet:
        kwargs = {}
        for n in cls.FIELDS:
            value = values.get(f"{n}_canister_id")
            kwargs[n] = Principal.from_str(value) if value else None
        return cls(**kwargs)


@dataclass(frozen=True)
class DerivedState:
    """Aggregate participation statistics of a sale."""

    direct_participant_count: Optional[int] = None

    direct_participation_icp_e8s: Optional[int] = None

    buyer_total_icp_e8s: Optional[int] = None

    cf_participant_count: Optional[int] = None

    cf_participation_icp_e8s: Optional[int] = None

    sns_tokens_per_icp: Optional[float] = None

    def thresholds_met(self, min_participants: int, min_direct_participation: int) -> bool:
        return (self.direct_participant_count or 0) >= min_participants and (
            self.direct_participation_icp_e8s or 0
        ) >= min_direct_participation


@dataclass(frozen=True)
class SaleTicket:
    ticket_id: int

    amount_icp_e8s: int

    creation_time: int = 0

    existing: bool = False
    """True when the sale returned a ticket that had already been issued."""


@dataclass(frozen=True)
class RefreshResult:
    icp_accepted_participation_e8s: int

    icp_ledger_account_balance_e8s: int


@dataclass(frozen=True)
class FinalizeResult:
    error_message: Optional[str] = None

    details: JsonDict = field(default_factory=dict)


@dataclass(frozen=True)
class NeuronInfo:
    """An ICP governance neuron as returned to its controller or hotkeys."""

    id: int

    cached_neuron_stake_e8s: int = 0

    dissolve_delay_seconds: int = 0

    dissolving: bool = False

    controller: Optional[Principal] = None

    hot_keys: List[Principal] = field(default_factory=list)

    maturity_e8s_equivalent: int = 0

    visibility: Optional[int] = None


@dataclass(frozen=True)
class SnsNeuron:
    """A neuron of a deployed service's governance canister."""

    id: bytes
    """Neuron id, which is also the neuron's subaccount of the SNS governance canister."""

    cached_neuron_stake_e8s: int = 0

    dissolve_delay_seconds: int = 0

    dissolving: bool = False

    permissions: Dict[Principal, List[int]] = field(default_factory=dict)

    @property
    def id_hex(self) -> str:
        return self.id.hex()


@typechecked
class NetworkContext:
    """Interfaces through which the library interacts with the ledger, governance, factory and sale canisters."""

    def transfer(
        self,
        sender: Identity,
        ledger: Principal,
        to: Principal,
        amount: int,
        to_subaccount: Optional[Subaccount] = None,
        fee: Optional[int] = None,
    ) -> int:
        """Transfer tokens from the sender's default account.

        Args:
            sender (Identity): Owner of the source account, signs the call.
            ledger (Principal): ICRC-1 ledger canister.
            to (Principal): Owner of the destination account.
            amount (int): Amount in e8s, excluding the fee.
            to_subaccount (Optional[Subaccount]): Destination subaccount.
            fee (Optional[int]): Expected fee, the ledger default if None.

        Returns:
            int: Block index of the transfer.

        Raises:
            :class:`TransferFailedException`: When the ledger rejects the transfer.
        """
        raise NotImplementedError()

    def balance_of(
        self, ledger: Principal, owner: Principal, subaccount: Optional[Subaccount] = None
    ) -> int:
        """Balance in e8s of an account."""
        raise NotImplementedError()

    def transfer_fee(self, ledger: Principal) -> int:
        """Fee in e8s charged by the ledger for each transfer."""
        raise NotImplementedError()

    def claim_neuron(self, sender: Identity, governance: Principal, memo: int) -> int:
        """Claim the neuron staked at the sender's memo subaccount of the governance canister.

        Returns:
            int: The neuron id.

        Raises:
            :class:`GovernanceException`: When governance refuses the claim.
        """
        raise NotImplementedError()

    def increase_dissolve_delay(
        self, sender: Identity, governance: Principal, neuron_id: int, additional_seconds: int
    ):
        """Add ``additional_seconds`` to a neuron's dissolve delay. Not idempotent."""
        raise NotImplementedError()

    def set_dissolving(
        self, sender: Identity, governance: Principal, neuron_id: int, dissolving: bool
    ):
        """Start (True) or stop (False) dissolving a neuron."""
        raise NotImplementedError()

    def add_hot_key(
        self, sender: Identity, governance: Principal, neuron_id: int, hot_key: Principal
    ):
        raise NotImplementedError()

    def set_visibility(
        self, sender: Identity, governance: Principal, neuron_id: int, public: bool
    ):
        raise NotImplementedError()

    def make_proposal(
        self,
        sender: Identity,
        governance: Principal,
        neuron_id: int,
        title: str,
        summary: str,
        url: str,
        create_service_nervous_system: JsonDict,
    ) -> int:
        """Submit a CreateServiceNervousSystem proposal.

        Returns:
            int: The proposal id.

        Raises:
            :class:`GovernanceException`: When governance refuses the proposal.
        """
        raise NotImplementedError()

    def list_neurons(self, sender: Identity, governance: Principal) -> List[NeuronInfo]:
        """Neurons readable by the sender (controlled or hotkey)."""
        raise NotImplementedError()

    def get_full_neuron(
        self, sender: Identity, governance: Principal, neuron_id: int
    ) -> NeuronInfo:
        raise NotImplementedError()

    def get_deployed_sns(self, snsw: Principal, proposal_id: int) -> DeployedServiceSet:
        """Service set deployed by an executed proposal.

        Raises:
            :class:`DeployedServiceNotFoundException`: When the factory has not (yet)
                deployed anything for the proposal.
        """
        raise NotImplementedError()

    def list_deployed_snses(self, snsw: Principal) -> List[DeployedServiceSet]:
        raise NotImplementedError()

    def get_lifecycle(self, swap: Principal) -> SaleLifecycle:
        raise NotImplementedError()

    def get_derived_state(self, swap: Principal) -> DerivedState:
        raise NotImplementedError()

    def new_sale_ticket(
        self, sender: Identity, swap: Principal, amount: int, subaccount: Optional[Subaccount]
    ) -> SaleTicket:
        """Reserve a participation of ``amount`` e8s.

        Raises:
            :class:`SaleException`: When the sale refuses to issue a ticket.
        """
        raise NotImplementedError()

    def refresh_buyer_tokens(
        self, sender: Identity, swap: Principal, buyer: Principal
    ) -> RefreshResult:
        """Ask the sale to account for ICP sent to the buyer's subaccount."""
        raise NotImplementedError()

    def finalize_swap(self, sender: Identity, swap: Principal) -> FinalizeResult:
        raise NotImplementedError()

    def list_sns_neurons(self, governance: Principal, of_principal: Principal) -> List[SnsNeuron]:
        raise NotImplementedError()

    def add_sns_neuron_permissions(
        self,
        sender: Identity,
        governance: Principal,
        neuron_id: bytes,
        principal: Principal,
        permissions: List[int],
    ):
        raise NotImplementedError()

    def disburse_sns_neuron(
        self, sender: Identity, governance: Principal, neuron_id: bytes, to: Principal
    ) -> int:
        """Disburse a dissolved SNS neuron to ``to``'s default account.

        Returns:
            int: Block index of the resulting ledger transfer.
        """
        raise NotImplementedError()
