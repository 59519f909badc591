from unittest.mock import patch

import pytest

from pysns.cli import build_parser, main, parse_tokens
from pysns.deploy import DeploymentPipeline
from pysns.exception import InvalidArgumentException
from pysns.key import participant_seed, save_seed
from pysns.participants import derive_participant
from pysns.record import DeploymentRecord, DeploymentRecorder, ParticipantRecord
from test.pysns.util import DEPLOYED, SNS_LEDGER, RecordingSleep, sns_neuron_of


@pytest.fixture
def run(context, config):
    """Run the CLI against the fake network, with the output directory of ``config``."""

    def _run(*argv):
        with patch("pysns.cli.ConnectionContext.build", return_value=context):
            return main(["--output-dir", config.output_dir, *argv])

    return _run


@pytest.fixture
def recorded(config, operator):
    seed_file = save_seed(config.output_dir, 1, participant_seed(1))
    record = DeploymentRecord(
        position_id=1001,
        proposal_id=42,
        operator_principal=str(operator.principal),
        deployed=DEPLOYED,
        participants=[ParticipantRecord(str(derive_participant(1).principal), str(seed_file))],
    )
    DeploymentRecorder(config.output_dir).write(record)
    return record


@pytest.mark.parametrize(
    "text,e8s",
    [("0", 0), ("1", 100_000_000), ("1.5", 150_000_000), ("0.00000001", 1), ("1000000", 10**14)],
)
def test_parse_tokens(text, e8s):
    assert parse_tokens(text) == e8s


@pytest.mark.parametrize("text", ["abc", "-1", "0.000000001"])
def test_parse_tokens_invalid(text):
    with pytest.raises(InvalidArgumentException):
        parse_tokens(text)


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_check_deployed(run, network, capsys):
    assert run("check-deployed") == 0
    assert "SNS deployed" in capsys.readouterr().out
    network.deployed = None
    assert run("check-deployed") == 1
    assert "No SNS deployed" in capsys.readouterr().out


def test_mint_and_balance(run, network, operator, config, capsys):
    assert run("mint", "--amount", "1.5") == 0
    assert "Block: 1" in capsys.readouterr().out
    assert network.balance_of(config.ledger, operator.principal) == 150_000_000
    assert run("get-balance") == 0
    assert "(150000000 e8s)" in capsys.readouterr().out


def test_invalid_amount_fails(run, network):
    assert run("mint", "--amount", "lots") == 1
    assert network.transfers == []


def test_create_neuron_default_memo(run, network, operator, config, capsys):
    run("mint", "--amount", "2")
    assert run("create-neuron", "--amount", "1", "--dissolve-delay", "600") == 0
    assert "Neuron: 1001" in capsys.readouterr().out
    assert network.dissolve_increases == [(1001, 600)]
    assert run("increase-dissolve-delay", "--neuron-id", "1001", "--seconds", "60") == 0
    assert run("manage-dissolving", "--neuron-id", "1001", "start") == 0
    assert run("add-hotkey", "--hotkey", "2vxsx-fae", "--neuron-id", "1001") == 0
    assert network.calls[-2:] == ["set_dissolving:1001:True", "add_hot_key:1001:2vxsx-fae"]
    assert run("list-neurons") == 0
    assert "1001" in capsys.readouterr().out


def test_sns_balance_requires_record(run):
    assert run("get-balance", "--sns") == 1


def test_sns_balance(run, network, recorded, operator, capsys):
    network.credit(SNS_LEDGER, operator.principal, 42)
    assert run("get-balance", "--sns") == 0
    assert "SNS (42 e8s)" in capsys.readouterr().out


def test_participant_neurons(run, network, recorded, capsys):
    participant = derive_participant(1)
    network.sns_neurons[participant.principal] = [sns_neuron_of(1, 100), sns_neuron_of(2, 200)]
    assert run("list-neurons", "--participant", "1") == 0
    assert (bytes([1]) * 32).hex() in capsys.readouterr().out

    assert run("add-hotkey", "--hotkey", "2vxsx-fae", "--participant", "1") == 0
    assert network.permissions_added[0][0] == participant.principal
    assert network.permissions_added[0][1] == bytes([2]) * 32

    assert run("disburse", "--participant", "1") == 0
    assert network.disbursed == [(participant.principal, bytes([1]) * 32, participant.principal)]


def test_add_hotkey_needs_target(run):
    assert run("add-hotkey", "--hotkey", "2vxsx-fae") == 1


def test_deploy(run, config, network, capsys):
    def fast_pipeline(*args, **kwargs):
        return DeploymentPipeline(*args, sleep=RecordingSleep(), **kwargs)

    with patch("pysns.cli.DeploymentPipeline", side_effect=fast_pipeline):
        assert run("deploy") == 0
    out = capsys.readouterr().out
    assert "Proposal: 42" in out
    assert "swap_canister_id: y5lwa-5qaaa-aaaaq-aaaca-cai" in out
    assert out.count("(registered)") == 5
    assert DeploymentRecorder(config.output_dir).read().proposal_id == 42
