import threading
from typing import Dict, List, Optional

from pysns.backend.base import (
    DeployedServiceSet,
    DerivedState,
    FinalizeResult,
    NetworkContext,
    NeuronInfo,
    RefreshResult,
    SaleLifecycle,
    SaleTicket,
    SnsNeuron,
)
from pysns.config import DeploymentConfig, PollBudget
from pysns.exception import (
    DeployedServiceNotFoundException,
    GovernanceException,
    TransferFailedException,
)
from pysns.hash import neuron_stake_subaccount, participant_subaccount
from pysns.key import Identity
from pysns.principal import Principal

SNS_ROOT = Principal.from_str("ygokf-hiaaa-aaaaq-aaaaq-cai")
SNS_GOVERNANCE = Principal.from_str("ypnbz-raaaa-aaaaq-aaaba-cai")
SNS_INDEX = Principal.from_str("yimhn-4yaaa-aaaaq-aaabq-cai")
SNS_SWAP = Principal.from_str("y5lwa-5qaaa-aaaaq-aaaca-cai")
SNS_LEDGER = Principal.from_str("y2kqu-qiaaa-aaaaq-aaacq-cai")

DEPLOYED = DeployedServiceSet(
    root=SNS_ROOT,
    governance=SNS_GOVERNANCE,
    index=SNS_INDEX,
    swap=SNS_SWAP,
    ledger=SNS_LEDGER,
)


def fast_config(**kwargs) -> DeploymentConfig:
    """Default configuration with every wait and retry delay set to zero."""
    values = dict(
        claim_delay=0,
        refresh_delay=0,
        proposal_poll=PollBudget(60, 10),
        sale_open_poll=PollBudget(300, 2),
        sale_commit_poll=PollBudget(30, 1),
    )
    values.update(kwargs)
    return DeploymentConfig(**values)


class RecordingSleep:
    """Stand-in for ``time.sleep`` that only adds up the requested durations."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def elapsed(self):
        return sum(self.calls)


class FakeNetworkContext(NetworkContext):
    """In-memory replica with one ICP ledger, NNS governance, SNS-W and one sale.

    Transfers from ``minter`` create tokens; all others move them and burn the fee.
    Lifecycle observations come from ``lifecycle_script`` while it has entries, then
    from ``lifecycle``, which turns COMMITTED once the thresholds are met when
    ``commit_on_thresholds`` is set.
    """

    def __init__(
        self,
        minter: Identity,
        ledger: Optional[Principal] = None,
        fee: int = 10_000,
        min_participants: int = 5,
        min_direct_participation: int = 500_000_000,
    ):
        self.minter = minter
        self.ledger = ledger or DeploymentConfig().ledger
        self.fee = fee
        self.min_participants = min_participants
        self.min_direct_participation = min_direct_participation
        self.lock = threading.Lock()
        self.balances: Dict[tuple, int] = {}
        self.transfers: List[tuple] = []
        self.calls: List[str] = []

        self.next_neuron_id = 1001
        self.neurons: Dict[int, NeuronInfo] = {}
        self.dissolve_increases: List[tuple] = []
        self.proposals: List[dict] = []
        self.proposal_id = 42

        self.deployed: Optional[DeployedServiceSet] = DEPLOYED
        self.deployed_after = 0
        self.deployed_queries = 0

        self.lifecycle = SaleLifecycle.OPEN
        self.lifecycle_script: List[object] = []
        self.commit_on_thresholds = True
        self.lifecycle_queries = 0

        self.ticket_error: Optional[Exception] = None
        self.tickets: List[tuple] = []
        self.refresh_script: Dict[Principal, List[object]] = {}
        self.refresh_calls: Dict[Principal, int] = {}
        self.accepted: Dict[Principal, int] = {}
        self.finalize_calls = 0

        self.sns_neurons: Dict[Principal, List[SnsNeuron]] = {}
        self.permissions_added: List[tuple] = []
        self.disbursed: List[tuple] = []

    @staticmethod
    def _key(ledger, owner, subaccount):
        return str(ledger), str(owner), bytes(subaccount) if subaccount else None

    def credit(self, ledger, owner, amount, subaccount=None):
        key = self._key(ledger, owner, subaccount)
        self.balances[key] = self.balances.get(key, 0) + amount

    def transfer(self, sender, ledger, to, amount, to_subaccount=None, fee=None):
        with self.lock:
            self.calls.append("transfer")
            if fee is not None and fee != self.fee:
                raise TransferFailedException(f"BadFee, expected {self.fee}")
            if sender.principal != self.minter.principal:
                source = self._key(ledger, sender.principal, None)
                balance = self.balances.get(source, 0)
                if balance < amount + self.fee:
                    raise TransferFailedException(f"InsufficientFunds, balance {balance}")
                self.balances[source] = balance - amount - self.fee
            self.credit(ledger, to, amount, to_subaccount)
            self.transfers.append((sender.principal, to, amount, to_subaccount))
            return len(self.transfers)

    def balance_of(self, ledger, owner, subaccount=None):
        with self.lock:
            return self.balances.get(self._key(ledger, owner, subaccount), 0)

    def transfer_fee(self, ledger):
        return self.fee

    def claim_neuron(self, sender, governance, memo):
        self.calls.append("claim_neuron")
        subaccount = neuron_stake_subaccount(sender.principal, memo)
        stake = self.balances.get(self._key(self.ledger, governance, subaccount), 0)
        if stake <= 0:
            raise GovernanceException("Account does not have enough funds to stake a neuron", 14)
        neuron_id = self.next_neuron_id
        self.next_neuron_id += 1
        self.neurons[neuron_id] = NeuronInfo(
            id=neuron_id, cached_neuron_stake_e8s=stake, controller=sender.principal
        )
        return neuron_id

    def increase_dissolve_delay(self, sender, governance, neuron_id, additional_seconds):
        self.calls.append("increase_dissolve_delay")
        if neuron_id not in self.neurons:
            raise GovernanceException(f"Neuron not found: {neuron_id}", 3)
        self.dissolve_increases.append((neuron_id, additional_seconds))
        neuron = self.neurons[neuron_id]
        self.neurons[neuron_id] = NeuronInfo(
            id=neuron_id,
            cached_neuron_stake_e8s=neuron.cached_neuron_stake_e8s,
            dissolve_delay_seconds=neuron.dissolve_delay_seconds + additional_seconds,
            controller=neuron.controller,
        )

    def set_dissolving(self, sender, governance, neuron_id, dissolving):
        self.calls.append(f"set_dissolving:{neuron_id}:{dissolving}")

    def add_hot_key(self, sender, governance, neuron_id, hot_key):
        self.calls.append(f"add_hot_key:{neuron_id}:{hot_key}")

    def set_visibility(self, sender, governance, neuron_id, public):
        self.calls.append(f"set_visibility:{neuron_id}:{public}")

    def make_proposal(self, sender, governance, neuron_id, title, summary, url, create_service_nervous_system):
        self.calls.append("make_proposal")
        if neuron_id not in self.neurons:
            raise GovernanceException(f"Neuron not found: {neuron_id}", 3)
        self.proposals.append(
            dict(neuron_id=neuron_id, title=title, summary=summary, url=url,
                 action=create_service_nervous_system)
        )
        return self.proposal_id

    def list_neurons(self, sender, governance):
        return [n for n in self.neurons.values() if n.controller == sender.principal]

    def get_full_neuron(self, sender, governance, neuron_id):
        if neuron_id not in self.neurons:
            raise GovernanceException(f"Neuron not found: {neuron_id}", 3)
        return self.neurons[neuron_id]

    def get_deployed_sns(self, snsw, proposal_id):
        self.deployed_queries += 1
        if self.deployed is None or self.deployed_queries <= self.deployed_after:
            raise DeployedServiceNotFoundException(f"No SNS for proposal {proposal_id}")
        return self.deployed

    def list_deployed_snses(self, snsw):
        return [self.deployed] if self.deployed is not None else []

    def derived_state(self) -> DerivedState:
        accepted = [a for a in self.accepted.values() if a > 0]
        return DerivedState(
            direct_participant_count=len(accepted),
            direct_participation_icp_e8s=sum(accepted),
            buyer_total_icp_e8s=sum(accepted),
        )

    def get_lifecycle(self, swap):
        self.lifecycle_queries += 1
        if self.lifecycle_script:
            observation = self.lifecycle_script.pop(0)
            if isinstance(observation, Exception):
                raise observation
            return observation
        if self.commit_on_thresholds and self.lifecycle == SaleLifecycle.OPEN:
            if self.derived_state().thresholds_met(
                self.min_participants, self.min_direct_participation
            ):
                self.lifecycle = SaleLifecycle.COMMITTED
        return self.lifecycle

    def get_derived_state(self, swap):
        with self.lock:
            return self.derived_state()

    def new_sale_ticket(self, sender, swap, amount, subaccount):
        if self.ticket_error is not None:
            raise self.ticket_error
        with self.lock:
            self.tickets.append((sender.principal, amount, subaccount))
            return SaleTicket(ticket_id=len(self.tickets), amount_icp_e8s=amount)

    def refresh_buyer_tokens(self, sender, swap, buyer):
        with self.lock:
            self.refresh_calls[buyer] = self.refresh_calls.get(buyer, 0) + 1
            script = self.refresh_script.get(buyer)
            if script:
                outcome = script.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            balance = self.balances.get(
                self._key(self.ledger, swap, participant_subaccount(buyer)), 0
            )
            self.accepted[buyer] = balance
            return RefreshResult(
                icp_accepted_participation_e8s=balance,
                icp_ledger_account_balance_e8s=balance,
            )

    def finalize_swap(self, sender, swap):
        self.finalize_calls += 1
        return FinalizeResult()

    def list_sns_neurons(self, governance, of_principal):
        return list(self.sns_neurons.get(of_principal, []))

    def add_sns_neuron_permissions(self, sender, governance, neuron_id, principal, permissions):
        self.permissions_added.append((sender.principal, neuron_id, principal, list(permissions)))

    def disburse_sns_neuron(self, sender, governance, neuron_id, to):
        self.disbursed.append((sender.principal, neuron_id, to))
        return 77


def sns_neuron_of(tag: int, dissolve_delay: int, stake: int = 100) -> SnsNeuron:
    return SnsNeuron(
        id=bytes([tag]) * 32,
        cached_neuron_stake_e8s=stake,
        dissolve_delay_seconds=dissolve_delay,
    )
