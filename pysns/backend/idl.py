"""Candid interface fragments of the canisters the deployment talks to.

Types are described with a small schema (:class:`Opt`, :class:`Vec`, :class:`Record`,
:class:`Variant` and primitive names) that is turned into ``ic-py`` types on demand,
so request values can be written as plain Python data: ``None`` for an absent
optional, :class:`~pysns.principal.Principal` for principals and ``bytes`` for blobs.

Responses are decoded without expected types, so record and variant labels may
come back either by name or as ``_<hash>``; :func:`field` and :func:`variant`
accept both.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from ic.candid import Types

from pysns.exception import DecodingException
from pysns.principal import Principal
from pysns.types import JsonDict

__all__ = [
    "Opt",
    "Vec",
    "Record",
    "Variant",
    "to_ic_type",
    "to_ic_value",
    "encode_args",
    "idl_hash",
    "field",
    "opt",
    "variant",
    "as_principal",
    "as_bytes",
]


class Opt:
    def __init__(self, inner):
        self.inner = inner


class Vec:
    def __init__(self, inner):
        self.inner = inner


class Record:
    def __init__(self, fields: Dict[str, Any]):
        self.fields = fields


class Variant:
    def __init__(self, fields: Dict[str, Any]):
        self.fields = fields


_PRIMITIVES = {
    "nat": Types.Nat,
    "nat8": Types.Nat8,
    "nat32": Types.Nat32,
    "nat64": Types.Nat64,
    "int32": Types.Int32,
    "float64": Types.Float64,
    "bool": Types.Bool,
    "text": Types.Text,
    "null": Types.Null,
    "principal": Types.Principal,
}


def to_ic_type(schema):
    if isinstance(schema, str):
        if schema == "blob":
            return Types.Vec(Types.Nat8)
        return _PRIMITIVES[schema]
    elif isinstance(schema, Opt):
        return Types.Opt(to_ic_type(schema.inner))
    elif isinstance(schema, Vec):
        return Types.Vec(to_ic_type(schema.inner))
    elif isinstance(schema, Record):
        return Types.Record({k: to_ic_type(v) for k, v in schema.fields.items()})
    elif isinstance(schema, Variant):
        return Types.Variant({k: to_ic_type(v) for k, v in schema.fields.items()})
    raise TypeError(f"Unknown schema: {schema!r}")


def to_ic_value(schema, value):
    """Convert plain Python data into the value shape ``ic-py`` encodes for ``schema``."""
    if isinstance(schema, str):
        if schema == "principal":
            return str(Principal.from_primitive(value))
        elif schema == "blob":
            return list(bytes(value))
        elif schema == "null":
            return None
        return value
    elif isinstance(schema, Opt):
        return [] if value is None else [to_ic_value(schema.inner, value)]
    elif isinstance(schema, Vec):
        return [to_ic_value(schema.inner, v) for v in value]
    elif isinstance(schema, Record):
        return {k: to_ic_value(t, value.get(k)) for k, t in schema.fields.items()}
    elif isinstance(schema, Variant):
        ((name, payload),) = value.items()
        return {name: to_ic_value(schema.fields[name], payload)}
    raise TypeError(f"Unknown schema: {schema!r}")


def encode_args(*args: Tuple[Any, Any]) -> List[JsonDict]:
    """Pair each ``(schema, value)`` into the parameter list taken by ``ic.candid.encode``."""
    return [{"type": to_ic_type(s), "value": to_ic_value(s, v)} for s, v in args]


def idl_hash(name: str) -> int:
    h = 0
    for c in name.encode():
        h = (h * 223 + c) % 2**32
    return h


def _lookup(mapping: JsonDict, name: str):
    if name in mapping:
        return True, mapping[name]
    hashed = f"_{idl_hash(name)}"
    if hashed in mapping:
        return True, mapping[hashed]
    return False, None


def field(record: JsonDict, name: str, default=None):
    """Field of a decoded record, whether labelled by name or by hash."""
    if not isinstance(record, dict):
        raise DecodingException(f"Expected a record with field {name}, got {record!r}")
    found, value = _lookup(record, name)
    return value if found else default


def opt(value):
    """Unwrap a decoded ``opt``: ``[]`` is None, ``[v]`` is v."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def variant(value: JsonDict, *names: str) -> Tuple[Optional[str], Any]:
    """Identify which of ``names`` a decoded variant holds.

    Returns:
        The matching name and its payload, or ``(None, value)`` if none match.
    """
    if not isinstance(value, dict):
        raise DecodingException(f"Expected a variant, got {value!r}")
    for name in names:
        found, payload = _lookup(value, name)
        if found:
            return name, payload
    return None, value


def as_principal(value) -> Optional[Principal]:
    value = opt(value)
    if value is None:
        return None
    elif isinstance(value, Principal):
        return value
    elif isinstance(value, (bytes, bytearray)):
        return Principal(bytes(value))
    elif hasattr(value, "bytes"):
        return Principal(bytes(value.bytes))
    return Principal.from_str(str(value))


def as_bytes(value: Union[bytes, List[int], None]) -> bytes:
    if value is None:
        return b""
    return bytes(value)


# Shared fragments

ACCOUNT = Record({"owner": "principal", "subaccount": Opt("blob")})

TRANSFER_ARG = Record(
    {
        "to": ACCOUNT,
        "fee": Opt("nat"),
        "memo": Opt("blob"),
        "from_subaccount": Opt("blob"),
        "created_at_time": Opt("nat64"),
        "amount": "nat",
    }
)

EMPTY = Record({})

# NNS governance

NEURON_ID = Record({"id": "nat64"})

TOKENS = Record({"e8s": Opt("nat64")})
DURATION = Record({"seconds": Opt("nat64")})
PERCENTAGE = Record({"basis_points": Opt("nat64")})
IMAGE = Record({"base64_encoding": Opt("text")})

GOVERNANCE_PARAMETERS = Record(
    {
        "neuron_maximum_dissolve_delay_bonus": Opt(PERCENTAGE),
        "neuron_maximum_age_for_age_bonus": Opt(DURATION),
        "neuron_maximum_dissolve_delay": Opt(DURATION),
        "neuron_minimum_dissolve_delay_to_vote": Opt(DURATION),
        "neuron_maximum_age_bonus": Opt(PERCENTAGE),
        "neuron_minimum_stake": Opt(TOKENS),
        "proposal_wait_for_quiet_deadline_increase": Opt(DURATION),
        "proposal_initial_voting_period": Opt(DURATION),
        "proposal_rejection_fee": Opt(TOKENS),
        "voting_reward_parameters": Opt(
            Record(
                {
                    "reward_rate_transition_duration": Opt(DURATION),
                    "initial_reward_rate": Opt(PERCENTAGE),
                    "final_reward_rate": Opt(PERCENTAGE),
                }
            )
        ),
    }
)

LEDGER_PARAMETERS = Record(
    {
        "transaction_fee": Opt(TOKENS),
        "token_symbol": Opt("text"),
        "token_logo": Opt(IMAGE),
        "token_name": Opt("text"),
    }
)

SWAP_PARAMETERS = Record(
    {
        "minimum_participants": Opt("nat64"),
        "neurons_fund_participation": Opt("bool"),
        "duration": Opt(DURATION),
        "neuron_basket_construction_parameters": Opt(
            Record({"dissolve_delay_interval": Opt(DURATION), "count": Opt("nat64")})
        ),
        "confirmation_text": Opt("text"),
        "maximum_participant_icp": Opt(TOKENS),
        "minimum_icp": Opt(TOKENS),
        "minimum_direct_participation_icp": Opt(TOKENS),
        "minimum_participant_icp": Opt(TOKENS),
        "start_time": Opt(Record({"seconds_after_utc_midnight": Opt("nat64")})),
        "maximum_direct_participation_icp": Opt(TOKENS),
        "maximum_icp": Opt(TOKENS),
        "neurons_fund_investment_icp": Opt(TOKENS),
        "restricted_countries": Opt(Record({"iso_codes": Vec("text")})),
    }
)

NEURON_DISTRIBUTION = Record(
    {
        "controller": Opt("principal"),
        "dissolve_delay": Opt(DURATION),
        "memo": Opt("nat64"),
        "vesting_period": Opt(DURATION),
        "stake": Opt(TOKENS),
    }
)

INITIAL_TOKEN_DISTRIBUTION = Record(
    {
        "treasury_distribution": Opt(Record({"total": Opt(TOKENS)})),
        "developer_distribution": Opt(
            Record({"developer_neurons": Vec(NEURON_DISTRIBUTION)})
        ),
        "swap_distribution": Opt(Record({"total": Opt(TOKENS)})),
    }
)

CREATE_SERVICE_NERVOUS_SYSTEM = Record(
    {
        "url": Opt("text"),
        "governance_parameters": Opt(GOVERNANCE_PARAMETERS),
        "fallback_controller_principal_ids": Vec("principal"),
        "logo": Opt(IMAGE),
        "name": Opt("text"),
        "ledger_parameters": Opt(LEDGER_PARAMETERS),
        "description": Opt("text"),
        "dapp_canisters": Vec(Record({"id": Opt("principal")})),
        "swap_parameters": Opt(SWAP_PARAMETERS),
        "initial_token_distribution": Opt(INITIAL_TOKEN_DISTRIBUTION),
    }
)

CONFIGURE_OPERATION = Variant(
    {
        "AddHotKey": Record({"new_hot_key": Opt("principal")}),
        "StopDissolving": EMPTY,
        "StartDissolving": EMPTY,
        "IncreaseDissolveDelay": Record({"additional_dissolve_delay_seconds": "nat32"}),
        "SetVisibility": Record({"visibility": Opt("int32")}),
    }
)

MANAGE_NEURON_COMMAND = Variant(
    {
        "ClaimOrRefresh": Record(
            {
                "by": Opt(
                    Variant(
                        {
                            "NeuronIdOrSubaccount": EMPTY,
                            "MemoAndController": Record(
                                {"controller": Opt("principal"), "memo": "nat64"}
                            ),
                            "Memo": "nat64",
                        }
                    )
                )
            }
        ),
        "Configure": Record({"operation": Opt(CONFIGURE_OPERATION)}),
        "MakeProposal": Record(
            {
                "url": "text",
                "title": Opt("text"),
                "action": Opt(
                    Variant({"CreateServiceNervousSystem": CREATE_SERVICE_NERVOUS_SYSTEM})
                ),
                "summary": "text",
            }
        ),
    }
)

MANAGE_NEURON_REQUEST = Record(
    {
        "id": Opt(NEURON_ID),
        "command": Opt(MANAGE_NEURON_COMMAND),
        "neuron_id_or_subaccount": Opt(
            Variant({"Subaccount": "blob", "NeuronId": NEURON_ID})
        ),
    }
)

LIST_NEURONS = Record(
    {
        "page_size": Opt("nat64"),
        "include_public_neurons_in_full_neurons": Opt("bool"),
        "neuron_ids": Vec("nat64"),
        "page_number": Opt("nat64"),
        "include_empty_neurons_readable_by_caller": Opt("bool"),
        "neuron_subaccounts": Opt(Vec(Record({"subaccount": "blob"}))),
        "include_neurons_readable_by_caller": "bool",
    }
)

# SNS-W

GET_DEPLOYED_SNS_BY_PROPOSAL_ID = Record({"proposal_id": "nat64"})

# Swap

NEW_SALE_TICKET = Record({"subaccount": Opt("blob"), "amount_icp_e8s": "nat64"})

REFRESH_BUYER_TOKENS = Record({"confirmation_text": Opt("text"), "buyer": "text"})

# SNS governance

SNS_NEURON_ID = Record({"id": "blob"})

SNS_LIST_NEURONS = Record(
    {"of_principal": Opt("principal"), "limit": "nat32", "start_page_at": Opt(SNS_NEURON_ID)}
)

SNS_MANAGE_NEURON = Record(
    {
        "subaccount": "blob",
        "command": Opt(
            Variant(
                {
                    "AddNeuronPermissions": Record(
                        {
                            "permissions_to_add": Opt(Record({"permissions": Vec("int32")})),
                            "principal_id": Opt("principal"),
                        }
                    ),
                    "Disburse": Record(
                        {
                            "to_account": Opt(
                                Record(
                                    {
                                        "owner": Opt("principal"),
                                        "subaccount": Opt(Record({"subaccount": "blob"})),
                                    }
                                )
                            ),
                            "amount": Opt(Record({"e8s": "nat64"})),
                        }
                    ),
                }
            )
        ),
    }
)
