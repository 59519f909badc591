import pytest

from pysns.context import ConnectionContext
from pysns.key import Identity, participant_seed
from test.pysns.util import FakeNetworkContext, fast_config

OPERATOR_SEED = bytes(range(32))


@pytest.fixture
def operator() -> Identity:
    return Identity.from_seed(OPERATOR_SEED)


@pytest.fixture
def minter() -> Identity:
    return Identity.minting()


@pytest.fixture
def config(tmp_path):
    return fast_config(output_dir=str(tmp_path / "generated"))


@pytest.fixture
def network(minter, config) -> FakeNetworkContext:
    return FakeNetworkContext(
        minter,
        ledger=config.ledger,
        min_participants=config.min_participants,
        min_direct_participation=config.min_direct_participation,
    )


@pytest.fixture
def context(network, operator, minter, config) -> ConnectionContext:
    return ConnectionContext(
        network=network,
        operator=operator,
        minter=minter,
        governance=config.governance,
        ledger=config.ledger,
        snsw=config.snsw,
    )


@pytest.fixture
def participant_identity() -> Identity:
    return Identity.from_seed(participant_seed(1))

