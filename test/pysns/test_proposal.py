import pytest

from pysns.backend.base import DeployedServiceSet
from pysns.exception import DeployedServiceNotFoundException, MissingEndpointException
from pysns.proposal import ProposalStage
from pysns.sns_config import DEFAULT_LOGO, SnsParameters, create_service_nervous_system
from pysns.staking import StakeFundingStage
from test.pysns.util import DEPLOYED, SNS_GOVERNANCE, RecordingSleep


@pytest.fixture
def position(context, config):
    return StakeFundingStage(context, config, sleep=RecordingSleep()).run()


def test_submit(context, config, network, position):
    stage = ProposalStage(context, config, sleep=RecordingSleep())
    assert stage.submit(position.position_id) == 42
    proposal = network.proposals[0]
    assert proposal["neuron_id"] == position.position_id
    assert proposal["title"] == config.proposal_title
    assert proposal["url"] == "https://acmedao.io"
    assert proposal["action"]["name"] == "AcmeDAO"
    assert proposal["action"]["logo"] == {"base64_encoding": DEFAULT_LOGO}


def test_deployed_after_a_few_attempts(context, config, network, position):
    network.deployed_after = 3
    sleep = RecordingSleep()
    stage = ProposalStage(context, config, sleep=sleep)
    assert stage.run(position.position_id) == DEPLOYED
    assert stage.proposal_id == 42
    assert network.deployed_queries == 4
    assert sleep.calls == [10] * 4


def test_never_deployed(context, config, network, position):
    network.deployed = None
    sleep = RecordingSleep()
    stage = ProposalStage(context, config, sleep=sleep)
    with pytest.raises(DeployedServiceNotFoundException) as e:
        stage.run(position.position_id)
    assert "42" in str(e.value)
    # The poll budget plus one final fetch, never more than the budget in sleep.
    assert network.deployed_queries == config.proposal_poll.attempts + 1
    assert sleep.elapsed <= config.proposal_poll.max_elapsed


def test_final_fetch_after_timeout_succeeds(context, config, network, position):
    network.deployed_after = config.proposal_poll.attempts
    stage = ProposalStage(context, config, sleep=RecordingSleep())
    assert stage.run(position.position_id) == DEPLOYED


def test_missing_swap_endpoint(context, config, network, position):
    network.deployed = DeployedServiceSet(governance=SNS_GOVERNANCE, ledger=DEPLOYED.ledger)
    with pytest.raises(MissingEndpointException):
        ProposalStage(context, config, sleep=RecordingSleep()).run(position.position_id)


def test_create_service_nervous_system(operator):
    params = SnsParameters(restricted_countries=[])
    action = create_service_nervous_system(operator.principal, params, "data:image/png;base64,AA==")
    assert action["fallback_controller_principal_ids"] == [operator.principal]
    assert action["logo"] == {"base64_encoding": "data:image/png;base64,AA=="}
    swap = action["swap_parameters"]
    assert swap["minimum_participants"] == 5
    assert swap["restricted_countries"] is None
    assert swap["start_time"] is None
    developer = action["initial_token_distribution"]["developer_distribution"]
    assert developer["developer_neurons"][0]["controller"] == operator.principal
