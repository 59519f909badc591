"""
Replica network context, backed by the ``ic-py`` agent.
"""

import threading
import time
from typing import Dict, List, Optional

import cbor2
import requests
from cachetools import LRUCache, TTLCache
from ic.agent import Agent
from ic.candid import encode
from ic.client import Client
from ic.identity import Identity as AgentIdentity
from typing_extensions import override

from pysns.backend import idl
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
from pysns.exception import (
    CanisterCallException,
    ConnectionException,
    DecodingException,
    DeployedServiceNotFoundException,
    GovernanceException,
    SaleException,
    TransferFailedException,
)
from pysns.hash import Subaccount
from pysns.key import Identity
from pysns.logging import logger
from pysns.principal import Principal
from pysns.types import JsonDict

__all__ = ["AgentNetworkContext", "replica_status"]

VISIBILITY_PRIVATE = 1
VISIBILITY_PUBLIC = 2


def replica_status(url: str, timeout: float = 10) -> JsonDict:
    """Fetch and decode the replica's ``/api/v2/status`` document.

    Raises:
        :class:`ConnectionException`: When the replica is unreachable or the answer is not CBOR.
    """
    try:
        response = requests.get(f"{url.rstrip('/')}/api/v2/status", timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as err:
        raise ConnectionException(f"Replica at {url} is not reachable: {err}") from err
    try:
        status = cbor2.loads(response.content)
    except cbor2.CBORDecodeError as err:
        raise ConnectionException(f"Replica at {url} returned an invalid status") from err
    if isinstance(status, cbor2.CBORTag):
        status = status.value
    if not isinstance(status, dict):
        raise ConnectionException(f"Replica at {url} returned an invalid status")
    return status


def _nat(value, default: int = 0) -> int:
    value = idl.opt(value)
    return default if value is None else int(value)


class AgentNetworkContext(NetworkContext):
    """A :class:`NetworkContext` talking to a replica over HTTP.

    Args:
        url (str): Replica endpoint, e.g. ``http://127.0.0.1:4943``.
        agent_cache_size (int): Number of per-identity agents kept around.
        fee_cache_ttl (float): Seconds a ledger's fee is cached.
    """

    def __init__(self, url: str, agent_cache_size: int = 64, fee_cache_ttl: float = 60):
        self._url = url
        self._client = Client(url=url)
        self._agents = LRUCache(maxsize=agent_cache_size)
        self._fee_cache = TTLCache(ttl=fee_cache_ttl, maxsize=16)
        self._cache_lock = threading.Lock()
        self._anonymous = None

    @property
    def url(self) -> str:
        return self._url

    def _agent(self, identity: Optional[Identity] = None) -> Agent:
        # Shared by the participant worker threads.
        with self._cache_lock:
            if identity is None:
                if self._anonymous is None:
                    self._anonymous = Agent(AgentIdentity(anonymous=True), self._client)
                return self._anonymous
            key = str(identity.principal)
            agent = self._agents.get(key)
            if agent is None:
                agent_identity = AgentIdentity(
                    privkey=identity.private_key.hex(), type=identity.key_type.value
                )
                agent = self._agents[key] = Agent(agent_identity, self._client)
            return agent

    def _call(
        self,
        canister: Principal,
        method: str,
        args: List[JsonDict],
        sender: Optional[Identity] = None,
        query: bool = False,
    ):
        """Run a query or update call and return the first decoded result value."""
        arg = encode(args)
        agent = self._agent(sender)
        try:
            if query:
                result = agent.query_raw(str(canister), method, arg)
            else:
                result = agent.update_raw(str(canister), method, arg)
        except Exception as err:
            raise CanisterCallException(str(canister), method, str(err)) from err
        if not isinstance(result, list) or not result:
            raise DecodingException(f"Unexpected reply from {method} on {canister}: {result!r}")
        return result[0]["value"]

    @override
    def transfer(
        self,
        sender: Identity,
        ledger: Principal,
        to: Principal,
        amount: int,
        to_subaccount: Optional[Subaccount] = None,
        fee: Optional[int] = None,
    ) -> int:
        request = {
            "to": {
                "owner": to,
                "subaccount": bytes(to_subaccount) if to_subaccount else None,
            },
            "fee": fee,
            "memo": None,
            "from_subaccount": None,
            "created_at_time": None,
            "amount": amount,
        }
        try:
            reply = self._call(
                ledger,
                "icrc1_transfer",
                idl.encode_args((idl.TRANSFER_ARG, request)),
                sender=sender,
            )
        except CanisterCallException as err:
            raise TransferFailedException(f"Transfer of {amount} e8s to {to} failed: {err}") from err
        name, payload = idl.variant(reply, "Ok", "Err")
        if name == "Ok":
            return int(payload)
        raise TransferFailedException(
            f"Ledger rejected transfer of {amount} e8s from {sender.principal} to {to}: {payload!r}"
        )

    @override
    def balance_of(
        self, ledger: Principal, owner: Principal, subaccount: Optional[Subaccount] = None
    ) -> int:
        account = {"owner": owner, "subaccount": bytes(subaccount) if subaccount else None}
        reply = self._call(
            ledger,
            "icrc1_balance_of",
            idl.encode_args((idl.ACCOUNT, account)),
            query=True,
        )
        return int(reply)

    @override
    def transfer_fee(self, ledger: Principal) -> int:
        key = str(ledger)
        with self._cache_lock:
            fee = self._fee_cache.get(key)
        if fee is None:
            fee = int(self._call(ledger, "icrc1_fee", [], query=True))
            with self._cache_lock:
                self._fee_cache[key] = fee
        return fee

    def _manage_neuron(
        self, sender: Identity, governance: Principal, neuron_id: Optional[int], command: JsonDict
    ):
        request = {
            "id": {"id": neuron_id} if neuron_id is not None else None,
            "command": command,
            "neuron_id_or_subaccount": None,
        }
        reply = self._call(
            governance,
            "manage_neuron",
            idl.encode_args((idl.MANAGE_NEURON_REQUEST, request)),
            sender=sender,
        )
        result = idl.opt(idl.field(reply, "command"))
        if result is None:
            raise DecodingException("manage_neuron returned no command result")
        name, payload = idl.variant(
            result, "Error", "ClaimOrRefresh", "Configure", "MakeProposal"
        )
        if name == "Error":
            raise GovernanceException(
                f"Governance error: {idl.field(payload, 'error_message')}",
                int(idl.field(payload, "error_type", 0)),
            )
        if name is None:
            raise DecodingException(f"Unexpected manage_neuron result: {result!r}")
        return name, payload

    @override
    def claim_neuron(self, sender: Identity, governance: Principal, memo: int) -> int:
        command = {
            "ClaimOrRefresh": {
                "by": {"MemoAndController": {"controller": sender.principal, "memo": memo}}
            }
        }
        _, payload = self._manage_neuron(sender, governance, None, command)
        neuron_id = idl.opt(idl.field(payload, "refreshed_neuron_id"))
        if neuron_id is None:
            raise GovernanceException(f"Claim with memo {memo} returned no neuron id")
        return int(idl.field(neuron_id, "id"))

    def _configure(self, sender: Identity, governance: Principal, neuron_id: int, operation: JsonDict):
        self._manage_neuron(sender, governance, neuron_id, {"Configure": {"operation": operation}})

    @override
    def increase_dissolve_delay(
        self, sender: Identity, governance: Principal, neuron_id: int, additional_seconds: int
    ):
        self._configure(
            sender,
            governance,
            neuron_id,
            {"IncreaseDissolveDelay": {"additional_dissolve_delay_seconds": additional_seconds}},
        )

    @override
    def set_dissolving(
        self, sender: Identity, governance: Principal, neuron_id: int, dissolving: bool
    ):
        operation = {"StartDissolving": {}} if dissolving else {"StopDissolving": {}}
        self._configure(sender, governance, neuron_id, operation)

    @override
    def add_hot_key(
        self, sender: Identity, governance: Principal, neuron_id: int, hot_key: Principal
    ):
        self._configure(sender, governance, neuron_id, {"AddHotKey": {"new_hot_key": hot_key}})

    @override
    def set_visibility(
        self, sender: Identity, governance: Principal, neuron_id: int, public: bool
    ):
        visibility = VISIBILITY_PUBLIC if public else VISIBILITY_PRIVATE
        self._configure(
            sender, governance, neuron_id, {"SetVisibility": {"visibility": visibility}}
        )

    @override
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
        command = {
            "MakeProposal": {
                "url": url,
                "title": title,
                "summary": summary,
                "action": {"CreateServiceNervousSystem": create_service_nervous_system},
            }
        }
        _, payload = self._manage_neuron(sender, governance, neuron_id, command)
        proposal_id = idl.opt(idl.field(payload, "proposal_id"))
        if proposal_id is None:
            raise GovernanceException(
                f"Proposal was not created: {idl.opt(idl.field(payload, 'message'))}"
            )
        return int(idl.field(proposal_id, "id"))

    @staticmethod
    def _neuron_info(neuron: JsonDict) -> NeuronInfo:
        neuron_id = idl.opt(idl.field(neuron, "id"))
        if neuron_id is None:
            raise DecodingException("Neuron without id")
        dissolve_delay, dissolving = 0, False
        state = idl.opt(idl.field(neuron, "dissolve_state"))
        if state is not None:
            name, value = idl.variant(
                state, "DissolveDelaySeconds", "WhenDissolvedTimestampSeconds"
            )
            if name == "DissolveDelaySeconds":
                dissolve_delay = int(value)
            elif name == "WhenDissolvedTimestampSeconds":
                dissolving = True
                dissolve_delay = max(0, int(value) - int(time.time()))
        return NeuronInfo(
            id=int(idl.field(neuron_id, "id")),
            cached_neuron_stake_e8s=_nat(idl.field(neuron, "cached_neuron_stake_e8s")),
            dissolve_delay_seconds=dissolve_delay,
            dissolving=dissolving,
            controller=idl.as_principal(idl.field(neuron, "controller")),
            hot_keys=[idl.as_principal(k) for k in idl.field(neuron, "hot_keys", [])],
            maturity_e8s_equivalent=_nat(idl.field(neuron, "maturity_e8s_equivalent")),
            visibility=idl.opt(idl.field(neuron, "visibility")),
        )

    def _list_full_neurons(
        self, sender: Identity, governance: Principal, neuron_ids: List[int]
    ) -> List[NeuronInfo]:
        request = {
            "page_size": None,
            "include_public_neurons_in_full_neurons": None,
            "neuron_ids": neuron_ids,
            "page_number": None,
            "include_empty_neurons_readable_by_caller": True,
            "neuron_subaccounts": None,
            "include_neurons_readable_by_caller": not neuron_ids,
        }
        reply = self._call(
            governance,
            "list_neurons",
            idl.encode_args((idl.LIST_NEURONS, request)),
            sender=sender,
            query=True,
        )
        try:
            return [self._neuron_info(n) for n in idl.field(reply, "full_neurons", [])]
        except (TypeError, ValueError, KeyError) as err:
            raise DecodingException(f"Unable to decode list_neurons reply: {err}") from err

    @override
    def list_neurons(self, sender: Identity, governance: Principal) -> List[NeuronInfo]:
        return self._list_full_neurons(sender, governance, [])

    @override
    def get_full_neuron(
        self, sender: Identity, governance: Principal, neuron_id: int
    ) -> NeuronInfo:
        neurons = self._list_full_neurons(sender, governance, [neuron_id])
        for neuron in neurons:
            if neuron.id == neuron_id:
                return neuron
        raise GovernanceException(f"Neuron {neuron_id} not found or not readable by caller")

    @staticmethod
    def _deployed_set(deployed: JsonDict) -> DeployedServiceSet:
        return DeployedServiceSet(
            root=idl.as_principal(idl.field(deployed, "root_canister_id")),
            governance=idl.as_principal(idl.field(deployed, "governance_canister_id")),
            index=idl.as_principal(idl.field(deployed, "index_canister_id")),
            swap=idl.as_principal(idl.field(deployed, "swap_canister_id")),
            ledger=idl.as_principal(idl.field(deployed, "ledger_canister_id")),
        )

    @override
    def get_deployed_sns(self, snsw: Principal, proposal_id: int) -> DeployedServiceSet:
        reply = self._call(
            snsw,
            "get_deployed_sns_by_proposal_id",
            idl.encode_args((idl.GET_DEPLOYED_SNS_BY_PROPOSAL_ID, {"proposal_id": proposal_id})),
            query=True,
        )
        result = idl.opt(idl.field(reply, "get_deployed_sns_by_proposal_id_result"))
        if result is None:
            raise DeployedServiceNotFoundException(
                f"No deployment result for proposal {proposal_id}"
            )
        name, payload = idl.variant(result, "DeployedSns", "Error")
        if name != "DeployedSns":
            raise DeployedServiceNotFoundException(
                f"No SNS deployed for proposal {proposal_id}: {idl.field(payload, 'message', payload)}"
            )
        return self._deployed_set(payload)

    @override
    def list_deployed_snses(self, snsw: Principal) -> List[DeployedServiceSet]:
        reply = self._call(
            snsw, "list_deployed_snses", idl.encode_args((idl.EMPTY, {})), query=True
        )
        return [self._deployed_set(i) for i in idl.field(reply, "instances", [])]

    @override
    def get_lifecycle(self, swap: Principal) -> SaleLifecycle:
        reply = self._call(swap, "get_lifecycle", idl.encode_args((idl.EMPTY, {})), query=True)
        return SaleLifecycle.from_code(idl.opt(idl.field(reply, "lifecycle")))

    @override
    def get_derived_state(self, swap: Principal) -> DerivedState:
        reply = self._call(
            swap, "get_derived_state", idl.encode_args((idl.EMPTY, {})), query=True
        )

        def value(name):
            return idl.opt(idl.field(reply, name))

        return DerivedState(
            direct_participant_count=value("direct_participant_count"),
            direct_participation_icp_e8s=value("direct_participation_icp_e8s"),
            buyer_total_icp_e8s=value("buyer_total_icp_e8s"),
            cf_participant_count=value("cf_participant_count"),
            cf_participation_icp_e8s=value("cf_participation_icp_e8s"),
            sns_tokens_per_icp=value("sns_tokens_per_icp"),
        )

    @staticmethod
    def _ticket(ticket: JsonDict, existing: bool = False) -> SaleTicket:
        return SaleTicket(
            ticket_id=int(idl.field(ticket, "ticket_id")),
            amount_icp_e8s=int(idl.field(ticket, "amount_icp_e8s")),
            creation_time=int(idl.field(ticket, "creation_time", 0)),
            existing=existing,
        )

    @override
    def new_sale_ticket(
        self, sender: Identity, swap: Principal, amount: int, subaccount: Optional[Subaccount]
    ) -> SaleTicket:
        request = {
            "subaccount": bytes(subaccount) if subaccount else None,
            "amount_icp_e8s": amount,
        }
        reply = self._call(
            swap,
            "new_sale_ticket",
            idl.encode_args((idl.NEW_SALE_TICKET, request)),
            sender=sender,
        )
        result = idl.opt(idl.field(reply, "result"))
        if result is None:
            raise SaleException("new_sale_ticket returned no result")
        name, payload = idl.variant(result, "Ok", "Err")
        if name == "Ok":
            ticket = idl.opt(idl.field(payload, "ticket"))
            if ticket is None:
                raise SaleException("new_sale_ticket returned no ticket")
            return self._ticket(ticket)
        existing = idl.opt(idl.field(payload, "existing_ticket"))
        if existing is not None:
            return self._ticket(existing, existing=True)
        bounds = idl.opt(idl.field(payload, "invalid_user_amount"))
        raise SaleException(
            f"Sale refused ticket (error type {idl.field(payload, 'error_type')})"
            + (f", allowed amounts: {bounds!r}" if bounds else "")
        )

    @override
    def refresh_buyer_tokens(
        self, sender: Identity, swap: Principal, buyer: Principal
    ) -> RefreshResult:
        request = {"confirmation_text": None, "buyer": str(buyer)}
        reply = self._call(
            swap,
            "refresh_buyer_tokens",
            idl.encode_args((idl.REFRESH_BUYER_TOKENS, request)),
            sender=sender,
        )
        return RefreshResult(
            icp_accepted_participation_e8s=int(idl.field(reply, "icp_accepted_participation_e8s", 0)),
            icp_ledger_account_balance_e8s=int(idl.field(reply, "icp_ledger_account_balance_e8s", 0)),
        )

    @override
    def finalize_swap(self, sender: Identity, swap: Principal) -> FinalizeResult:
        reply = self._call(
            swap, "finalize_swap", idl.encode_args((idl.EMPTY, {})), sender=sender
        )
        return FinalizeResult(
            error_message=idl.opt(idl.field(reply, "error_message")),
            details=reply if isinstance(reply, dict) else {},
        )

    @staticmethod
    def _sns_neuron(neuron: JsonDict) -> SnsNeuron:
        neuron_id = idl.opt(idl.field(neuron, "id"))
        if neuron_id is None:
            raise DecodingException("SNS neuron without id")
        dissolve_delay, dissolving = 0, False
        state = idl.opt(idl.field(neuron, "dissolve_state"))
        if state is not None:
            name, value = idl.variant(
                state, "DissolveDelaySeconds", "WhenDissolvedTimestampSeconds"
            )
            if name == "DissolveDelaySeconds":
                dissolve_delay = int(value)
            elif name == "WhenDissolvedTimestampSeconds":
                dissolving = True
                dissolve_delay = max(0, int(value) - int(time.time()))
        permissions: Dict[Principal, List[int]] = {}
        for entry in idl.field(neuron, "permissions", []):
            principal = idl.as_principal(idl.field(entry, "principal"))
            if principal is not None:
                permissions[principal] = [int(p) for p in idl.field(entry, "permission_type", [])]
        return SnsNeuron(
            id=idl.as_bytes(idl.field(neuron_id, "id")),
            cached_neuron_stake_e8s=_nat(idl.field(neuron, "cached_neuron_stake_e8s")),
            dissolve_delay_seconds=dissolve_delay,
            dissolving=dissolving,
            permissions=permissions,
        )

    @override
    def list_sns_neurons(self, governance: Principal, of_principal: Principal) -> List[SnsNeuron]:
        request = {"of_principal": of_principal, "limit": 100, "start_page_at": None}
        reply = self._call(
            governance,
            "list_neurons",
            idl.encode_args((idl.SNS_LIST_NEURONS, request)),
            query=True,
        )
        try:
            return [self._sns_neuron(n) for n in idl.field(reply, "neurons", [])]
        except (TypeError, ValueError, KeyError) as err:
            raise DecodingException(f"Unable to decode SNS list_neurons reply: {err}") from err

    def _manage_sns_neuron(
        self, sender: Identity, governance: Principal, neuron_id: bytes, command: JsonDict
    ):
        request = {"subaccount": neuron_id, "command": command}
        reply = self._call(
            governance,
            "manage_neuron",
            idl.encode_args((idl.SNS_MANAGE_NEURON, request)),
            sender=sender,
        )
        result = idl.opt(idl.field(reply, "command"))
        if result is None:
            raise DecodingException("SNS manage_neuron returned no command result")
        name, payload = idl.variant(result, "Error", "AddNeuronPermission", "Disburse")
        if name == "Error":
            raise GovernanceException(
                f"SNS governance error: {idl.field(payload, 'error_message')}",
                int(idl.field(payload, "error_type", 0)),
            )
        return name, payload

    @override
    def add_sns_neuron_permissions(
        self,
        sender: Identity,
        governance: Principal,
        neuron_id: bytes,
        principal: Principal,
        permissions: List[int],
    ):
        command = {
            "AddNeuronPermissions": {
                "permissions_to_add": {"permissions": permissions},
                "principal_id": principal,
            }
        }
        self._manage_sns_neuron(sender, governance, neuron_id, command)

    @override
    def disburse_sns_neuron(
        self, sender: Identity, governance: Principal, neuron_id: bytes, to: Principal
    ) -> int:
        command = {"Disburse": {"to_account": {"owner": to, "subaccount": None}, "amount": None}}
        name, payload = self._manage_sns_neuron(sender, governance, neuron_id, command)
        if name != "Disburse":
            raise DecodingException(f"Unexpected SNS manage_neuron result: {payload!r}")
        return int(idl.field(payload, "transfer_block_height", 0))

    def ping(self) -> JsonDict:
        """Check the replica is healthy, returning its status document.

        Raises:
            :class:`ConnectionException`: When the replica is unreachable or unhealthy.
        """
        status = replica_status(self._url)
        health = status.get("replica_health_status")
        if health is not None and health != "healthy":
            raise ConnectionException(f"Replica at {self._url} is {health}")
        logger.debug(f"Replica at {self._url} is {health or 'up'}")
        return status
