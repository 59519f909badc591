"""Day-to-day operations on ICP and SNS neurons, balances and deployments."""

from typing import List, Optional

from pysns.backend.base import NeuronInfo, SnsNeuron
from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.exception import GovernanceException, InvalidArgumentException
from pysns.hash import Subaccount, neuron_stake_subaccount
from pysns.key import Identity
from pysns.logging import logger
from pysns.principal import Principal
from pysns.types import format_tokens

__all__ = [
    "DEFAULT_HOTKEY_PERMISSIONS",
    "sort_neurons",
    "list_neurons",
    "create_neuron",
    "increase_dissolve_delay",
    "set_dissolving",
    "add_hotkey",
    "set_visibility",
    "mint_icp",
    "get_balance",
    "list_participant_neurons",
    "add_sns_hotkey",
    "disburse_participant_neuron",
    "check_deployed",
]

# SNS neuron permissions: vote (3) and submit proposal (4).
DEFAULT_HOTKEY_PERMISSIONS = [3, 4]


def sort_neurons(neurons):
    """Shortest dissolve delay first; larger stake first among equal delays."""
    return sorted(neurons, key=lambda n: (n.dissolve_delay_seconds, -n.cached_neuron_stake_e8s))


def list_neurons(context: ConnectionContext, owner: Optional[Identity] = None) -> List[NeuronInfo]:
    owner = owner or context.operator
    return sort_neurons(context.network.list_neurons(owner, context.governance))


def create_neuron(
    context: ConnectionContext,
    amount: int,
    memo: int,
    dissolve_delay: Optional[int] = None,
    owner: Optional[Identity] = None,
    fee: Optional[int] = None,
) -> int:
    """Stake ``amount`` e8s from the owner's account into a new ICP neuron.

    Returns:
        int: The claimed neuron id.
    """
    owner = owner or context.operator
    fee = context.network.transfer_fee(context.ledger) if fee is None else fee
    if amount <= 0:
        raise InvalidArgumentException(f"Neuron stake must be positive: {amount}")
    subaccount = neuron_stake_subaccount(owner.principal, memo)
    context.network.transfer(
        owner, context.ledger, context.governance, amount, to_subaccount=subaccount, fee=fee
    )
    neuron_id = context.network.claim_neuron(owner, context.governance, memo)
    logger.info(f"Created neuron {neuron_id} with {format_tokens(amount)} ICP")
    if dissolve_delay:
        increase_dissolve_delay(context, neuron_id, dissolve_delay, owner=owner)
    return neuron_id


def increase_dissolve_delay(
    context: ConnectionContext,
    neuron_id: int,
    additional_seconds: int,
    owner: Optional[Identity] = None,
):
    if not 0 < additional_seconds < 2**32:
        raise InvalidArgumentException(
            f"Additional dissolve delay must fit in u32 seconds: {additional_seconds}"
        )
    owner = owner or context.operator
    context.network.increase_dissolve_delay(
        owner, context.governance, neuron_id, additional_seconds
    )
    logger.info(f"Increased dissolve delay of neuron {neuron_id} by {additional_seconds}s")


def set_dissolving(
    context: ConnectionContext, neuron_id: int, dissolving: bool, owner: Optional[Identity] = None
):
    owner = owner or context.operator
    context.network.set_dissolving(owner, context.governance, neuron_id, dissolving)
    logger.info(f"Neuron {neuron_id} {'started' if dissolving else 'stopped'} dissolving")


def add_hotkey(
    context: ConnectionContext, neuron_id: int, hot_key: Principal, owner: Optional[Identity] = None
):
    owner = owner or context.operator
    context.network.add_hot_key(owner, context.governance, neuron_id, hot_key)
    logger.info(f"Added hotkey {hot_key} to neuron {neuron_id}")


def set_visibility(
    context: ConnectionContext, neuron_id: int, public: bool, owner: Optional[Identity] = None
):
    owner = owner or context.operator
    context.network.set_visibility(owner, context.governance, neuron_id, public)
    logger.info(f"Neuron {neuron_id} is now {'public' if public else 'private'}")


def mint_icp(context: ConnectionContext, to: Principal, amount: int, config: DeploymentConfig) -> int:
    """Transfer ICP from the minting account, returning the block index."""
    if amount <= 0:
        raise InvalidArgumentException(f"Mint amount must be positive: {amount}")
    block = context.network.transfer(
        context.minter, context.ledger, to, amount, fee=config.transfer_fee
    )
    logger.info(f"Minted {format_tokens(amount)} ICP to {to} in block {block}")
    return block


def get_balance(
    context: ConnectionContext,
    owner: Principal,
    subaccount_hex: Optional[str] = None,
    ledger: Optional[Principal] = None,
) -> int:
    subaccount = Subaccount.from_hex(subaccount_hex) if subaccount_hex else None
    return context.network.balance_of(ledger or context.ledger, owner, subaccount)


def list_participant_neurons(
    context: ConnectionContext, governance: Principal, participant: Principal
) -> List[SnsNeuron]:
    return sort_neurons(context.network.list_sns_neurons(governance, participant))


def add_sns_hotkey(
    context: ConnectionContext,
    governance: Principal,
    participant: Identity,
    hot_key: Principal,
    permissions: Optional[List[int]] = None,
) -> SnsNeuron:
    """Grant ``hot_key`` permissions on the participant's longest-locked SNS neuron."""
    neurons = list_participant_neurons(context, governance, participant.principal)
    if not neurons:
        raise GovernanceException(f"{participant.principal} has no SNS neurons")
    neuron = neurons[-1]
    permissions = permissions or DEFAULT_HOTKEY_PERMISSIONS
    context.network.add_sns_neuron_permissions(
        participant, governance, neuron.id, hot_key, permissions
    )
    logger.info(f"Granted {permissions} on SNS neuron {neuron.id_hex} to {hot_key}")
    return neuron


def disburse_participant_neuron(
    context: ConnectionContext,
    governance: Principal,
    participant: Identity,
    to: Optional[Principal] = None,
) -> int:
    """Disburse the participant's shortest-locked SNS neuron, returning the block index."""
    neurons = list_participant_neurons(context, governance, participant.principal)
    if not neurons:
        raise GovernanceException(f"{participant.principal} has no SNS neurons")
    neuron = neurons[0]
    block = context.network.disburse_sns_neuron(
        participant, governance, neuron.id, to or participant.principal
    )
    logger.info(f"Disbursed SNS neuron {neuron.id_hex} in block {block}")
    return block


def check_deployed(context: ConnectionContext) -> bool:
    instances = context.network.list_deployed_snses(context.snsw)
    logger.info(f"{len(instances)} SNS instance(s) deployed")
    return bool(instances)
