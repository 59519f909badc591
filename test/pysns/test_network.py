import json

import pytest

from pysns.context import ConnectionContext, dfx_identity_path, load_dfx_identity
from pysns.exception import IdentityException, ConnectionException
from pysns.key import MINTING_PEM
from pysns.network import DEFAULT_REPLICA_URL, dfx_config_root, resolve_replica_url
from test.pysns.util import FakeNetworkContext


def write_networks(root, content):
    path = root / ".config" / "dfx" / "networks.json"
    path.parent.mkdir(parents=True)
    path.write_text(content)
    return path


def test_config_root(tmp_path):
    env = {"DFX_CONFIG_ROOT": str(tmp_path)}
    assert dfx_config_root(env) == tmp_path / ".config" / "dfx"


def test_default_url(tmp_path):
    assert resolve_replica_url({"DFX_CONFIG_ROOT": str(tmp_path)}) == DEFAULT_REPLICA_URL


def test_url_precedence(tmp_path):
    write_networks(tmp_path, json.dumps({"local": {"bind": "127.0.0.1:8000"}}))
    env = {"DFX_CONFIG_ROOT": str(tmp_path)}
    assert resolve_replica_url(env) == "http://127.0.0.1:8000"
    env["DFX_REPLICA_PORT"] = "8080"
    assert resolve_replica_url(env) == "http://127.0.0.1:8080"
    env["DFX_REPLICA_URL"] = "http://replica.example:4943/"
    assert resolve_replica_url(env) == "http://replica.example:4943"


def test_named_network(tmp_path):
    write_networks(
        tmp_path,
        json.dumps({"local": {"bind": "127.0.0.1:8000"}, "staging": {"bind": "https://staging"}}),
    )
    env = {"DFX_CONFIG_ROOT": str(tmp_path), "DFX_NETWORK": "staging"}
    assert resolve_replica_url(env) == "https://staging"
    env["DFX_NETWORK"] = "missing"
    assert resolve_replica_url(env) == DEFAULT_REPLICA_URL


def test_invalid_networks_file(tmp_path):
    write_networks(tmp_path, "{not json")
    with pytest.raises(ConnectionException):
        resolve_replica_url({"DFX_CONFIG_ROOT": str(tmp_path)})


def test_dfx_identity(tmp_path):
    env = {"DFX_CONFIG_ROOT": str(tmp_path), "DFX_IDENTITY": "deployer"}
    path = dfx_identity_path(env=env)
    assert path == tmp_path / ".config" / "dfx" / "identity" / "deployer" / "identity.pem"
    with pytest.raises(IdentityException):
        load_dfx_identity(env=env)
    path.parent.mkdir(parents=True)
    path.write_text(MINTING_PEM)
    assert load_dfx_identity(env=env).principal == load_dfx_identity("deployer", env).principal


def test_build_with_network(config, minter, operator):
    network = FakeNetworkContext(minter)
    ctx = ConnectionContext.build(config, network=network, operator=operator)
    assert ctx.network is network
    assert ctx.operator is operator
    assert ctx.minter.principal == minter.principal
    assert ctx.governance == config.governance
    assert ctx.ledger == config.ledger
    assert ctx.snsw == config.snsw
