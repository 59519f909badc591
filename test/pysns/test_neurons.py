import pytest

from pysns.backend.base import NeuronInfo
from pysns.exception import GovernanceException, InvalidArgumentException
from pysns.hash import neuron_stake_subaccount
from pysns.neurons import (
    DEFAULT_HOTKEY_PERMISSIONS,
    add_hotkey,
    add_sns_hotkey,
    check_deployed,
    create_neuron,
    disburse_participant_neuron,
    get_balance,
    increase_dissolve_delay,
    list_neurons,
    mint_icp,
    set_dissolving,
    set_visibility,
    sort_neurons,
)
from pysns.principal import Principal
from test.pysns.util import SNS_GOVERNANCE, sns_neuron_of


def test_sort_neurons():
    neurons = [NeuronInfo(1, 10, 300), NeuronInfo(2, 5, 100), NeuronInfo(3, 50, 100)]
    assert [n.id for n in sort_neurons(neurons)] == [3, 2, 1]


def test_mint_and_balance(context, config, network, operator):
    block = mint_icp(context, operator.principal, 5 * 10**8, config)
    assert block == 1
    assert get_balance(context, operator.principal) == 5 * 10**8
    with pytest.raises(InvalidArgumentException):
        mint_icp(context, operator.principal, 0, config)


def test_balance_of_subaccount(context, network, operator):
    subaccount = neuron_stake_subaccount(operator.principal, 7)
    network.credit(network.ledger, context.governance, 123, subaccount)
    assert get_balance(context, context.governance, subaccount.to_hex()) == 123
    assert get_balance(context, context.governance) == 0


def test_create_neuron(context, config, network, operator):
    mint_icp(context, operator.principal, 2 * 10**8, config)
    neuron_id = create_neuron(context, 10**8, memo=7, dissolve_delay=3600)
    assert network.neurons[neuron_id].cached_neuron_stake_e8s == 10**8
    assert network.dissolve_increases == [(neuron_id, 3600)]
    assert [n.id for n in list_neurons(context)] == [neuron_id]
    with pytest.raises(InvalidArgumentException):
        create_neuron(context, 0, memo=8)


def test_neuron_management(context, network):
    network.neurons[5] = NeuronInfo(5, 100, controller=context.operator.principal)
    increase_dissolve_delay(context, 5, 60)
    set_dissolving(context, 5, True)
    add_hotkey(context, 5, Principal.anonymous())
    set_visibility(context, 5, True)
    assert network.dissolve_increases == [(5, 60)]
    assert network.calls == [
        "increase_dissolve_delay",
        "set_dissolving:5:True",
        "add_hot_key:5:2vxsx-fae",
        "set_visibility:5:True",
    ]
    with pytest.raises(InvalidArgumentException):
        increase_dissolve_delay(context, 5, 2**32)


def test_add_sns_hotkey_targets_longest_lock(context, network, participant_identity):
    network.sns_neurons[participant_identity.principal] = [
        sns_neuron_of(1, 100), sns_neuron_of(2, 900), sns_neuron_of(3, 500)
    ]
    hot_key = Principal.anonymous()
    neuron = add_sns_hotkey(context, SNS_GOVERNANCE, participant_identity, hot_key)
    assert neuron.id == bytes([2]) * 32
    assert network.permissions_added == [
        (participant_identity.principal, neuron.id, hot_key, DEFAULT_HOTKEY_PERMISSIONS)
    ]


def test_disburse_targets_shortest_lock(context, network, participant_identity):
    network.sns_neurons[participant_identity.principal] = [sns_neuron_of(1, 100), sns_neuron_of(2, 0)]
    assert disburse_participant_neuron(context, SNS_GOVERNANCE, participant_identity) == 77
    assert network.disbursed == [
        (participant_identity.principal, bytes([2]) * 32, participant_identity.principal)
    ]


def test_no_sns_neurons(context, participant_identity):
    with pytest.raises(GovernanceException):
        disburse_participant_neuron(context, SNS_GOVERNANCE, participant_identity)
    with pytest.raises(GovernanceException):
        add_sns_hotkey(context, SNS_GOVERNANCE, participant_identity, Principal.anonymous())


def test_check_deployed(context, network):
    assert check_deployed(context)
    network.deployed = None
    assert not check_deployed(context)
