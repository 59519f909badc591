"""Parameters of the service nervous system created by the deployment proposal."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from pysns.logging import logger
from pysns.principal import Principal
from pysns.types import JsonDict

__all__ = [
    "DEFAULT_LOGO",
    "SnsParameters",
    "load_logo",
    "create_service_nervous_system",
]

DAY = 24 * 60 * 60
YEAR = 365 * DAY + DAY // 4

# 1x1 transparent PNG
DEFAULT_LOGO = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@dataclass(frozen=True)
class SnsParameters:
    """Token, governance, sale and distribution settings of the new SNS. Amounts in e8s."""

    name: str = "AcmeDAO"

    description: str = "AcmeDAO is a decentralized autonomous organization governed by its community."

    url: str = "https://acmedao.io"

    token_name: str = "Acme Token"

    token_symbol: str = "ACME"

    transaction_fee: int = 10_000

    # governance
    neuron_minimum_stake: int = 10_000_000

    neuron_minimum_dissolve_delay_to_vote: int = 30 * DAY

    neuron_maximum_dissolve_delay: int = 8 * YEAR

    neuron_maximum_dissolve_delay_bonus_bp: int = 10_000

    neuron_maximum_age_for_age_bonus: int = 4 * YEAR

    neuron_maximum_age_bonus_bp: int = 0

    proposal_initial_voting_period: int = 4 * DAY

    proposal_wait_for_quiet_deadline_increase: int = DAY

    proposal_rejection_fee: int = 11_000_000

    initial_reward_rate_bp: int = 0

    final_reward_rate_bp: int = 0

    reward_rate_transition_duration: int = 0

    # sale
    minimum_participants: int = 5

    minimum_direct_participation_icp: int = 5 * 100_000_000

    maximum_direct_participation_icp: int = 50 * 100_000_000

    minimum_participant_icp: int = 100_000_000

    maximum_participant_icp: int = 10 * 100_000_000

    neurons_fund_participation: bool = False

    sale_duration: int = 7 * DAY

    basket_count: int = 3

    basket_dissolve_delay_interval: int = 30 * DAY

    confirmation_text: Optional[str] = None

    restricted_countries: List[str] = field(default_factory=lambda: ["AQ"])

    # distribution
    treasury_total: int = 1_000_000_000

    swap_total: int = 2_000_000_000

    developer_neuron_stake: int = 100_000_000

    developer_neuron_dissolve_delay: int = 2 * YEAR

    developer_neuron_vesting_period: int = 4 * YEAR

    developer_neuron_memo: int = 0

    proposal_summary: str = (
        "This proposal creates a new Service Nervous System (SNS) for AcmeDAO with configured "
        "governance parameters, token distribution, and swap mechanics."
    )


def load_logo(path: Optional[Union[str, Path]] = None) -> str:
    """Data URI of a PNG logo, or :data:`DEFAULT_LOGO` if the file is absent or unreadable."""
    if path is None:
        return DEFAULT_LOGO
    path = Path(path)
    if not path.is_file():
        logger.info(f"Logo {path} not found, using the default logo.")
        return DEFAULT_LOGO
    try:
        encoded = base64.b64encode(path.read_bytes()).decode()
    except OSError as e:
        logger.warning(f"Failed to read logo {path}: {e}. Using the default logo.")
        return DEFAULT_LOGO
    return f"data:image/png;base64,{encoded}"


def _tokens(e8s: int) -> JsonDict:
    return {"e8s": e8s}


def _duration(seconds: int) -> JsonDict:
    return {"seconds": seconds}


def _percentage(basis_points: int) -> JsonDict:
    return {"basis_points": basis_points}


def create_service_nervous_system(
    owner: Principal, params: SnsParameters, logo: Optional[str] = None
) -> JsonDict:
    """Build the CreateServiceNervousSystem proposal action.

    Absent optional values are ``None``. The owner is both the fallback controller
    and the controller of the developer neuron.
    """
    logo = logo or DEFAULT_LOGO
    return {
        "name": params.name,
        "description": params.description,
        "url": params.url,
        "logo": {"base64_encoding": logo},
        "fallback_controller_principal_ids": [owner],
        "dapp_canisters": [],
        "ledger_parameters": {
            "transaction_fee": _tokens(params.transaction_fee),
            "token_symbol": params.token_symbol,
            "token_logo": {"base64_encoding": logo},
            "token_name": params.token_name,
        },
        "governance_parameters": {
            "neuron_maximum_dissolve_delay_bonus": _percentage(
                params.neuron_maximum_dissolve_delay_bonus_bp
            ),
            "neuron_maximum_age_for_age_bonus": _duration(
                params.neuron_maximum_age_for_age_bonus
            ),
            "neuron_maximum_dissolve_delay": _duration(params.neuron_maximum_dissolve_delay),
            "neuron_minimum_dissolve_delay_to_vote": _duration(
                params.neuron_minimum_dissolve_delay_to_vote
            ),
            "neuron_maximum_age_bonus": _percentage(params.neuron_maximum_age_bonus_bp),
            "neuron_minimum_stake": _tokens(params.neuron_minimum_stake),
            "proposal_wait_for_quiet_deadline_increase": _duration(
                params.proposal_wait_for_quiet_deadline_increase
            ),
            "proposal_initial_voting_period": _duration(params.proposal_initial_voting_period),
            "proposal_rejection_fee": _tokens(params.proposal_rejection_fee),
            "voting_reward_parameters": {
                "reward_rate_transition_duration": _duration(
                    params.reward_rate_transition_duration
                ),
                "initial_reward_rate": _percentage(params.initial_reward_rate_bp),
                "final_reward_rate": _percentage(params.final_reward_rate_bp),
            },
        },
        "swap_parameters": {
            "minimum_participants": params.minimum_participants,
            "neurons_fund_participation": params.neurons_fund_participation,
            "duration": _duration(params.sale_duration),
            "neuron_basket_construction_parameters": {
                "dissolve_delay_interval": _duration(params.basket_dissolve_delay_interval),
                "count": params.basket_count,
            },
            "confirmation_text": params.confirmation_text,
            "maximum_participant_icp": _tokens(params.maximum_participant_icp),
            "minimum_icp": None,
            "minimum_direct_participation_icp": _tokens(params.minimum_direct_participation_icp),
            "minimum_participant_icp": _tokens(params.minimum_participant_icp),
            "start_time": None,
            "maximum_direct_participation_icp": _tokens(params.maximum_direct_participation_icp),
            "maximum_icp": None,
            "neurons_fund_investment_icp": None,
            "restricted_countries": (
                {"iso_codes": list(params.restricted_countries)}
                if params.restricted_countries
                else None
            ),
        },
        "initial_token_distribution": {
            "treasury_distribution": {"total": _tokens(params.treasury_total)},
            "developer_distribution": {
                "developer_neurons": [
                    {
                        "controller": owner,
                        "dissolve_delay": _duration(params.developer_neuron_dissolve_delay),
                        "memo": params.developer_neuron_memo,
                        "vesting_period": _duration(params.developer_neuron_vesting_period),
                        "stake": _tokens(params.developer_neuron_stake),
                    }
                ]
            },
            "swap_distribution": {"total": _tokens(params.swap_total)},
        },
    }
