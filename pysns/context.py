"""Connection context shared by every stage of a deployment run."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from pysns.backend.agent import AgentNetworkContext
from pysns.backend.base import NetworkContext
from pysns.config import DeploymentConfig
from pysns.exception import IdentityException
from pysns.key import Identity
from pysns.logging import logger
from pysns.network import dfx_config_root, resolve_replica_url
from pysns.principal import Principal

__all__ = ["ConnectionContext", "dfx_identity_path", "load_dfx_identity"]


def dfx_identity_path(name: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    name = name or env.get("DFX_IDENTITY") or "default"
    return dfx_config_root(env) / "identity" / name / "identity.pem"


def load_dfx_identity(name: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Identity:
    """Load a dfx identity by name (``DFX_IDENTITY`` or ``default`` if omitted).

    Raises:
        :class:`IdentityException`: When the PEM is missing or unreadable.
    """
    path = dfx_identity_path(name, env)
    if not path.is_file():
        raise IdentityException(
            f"dfx identity PEM not found at {path}. Create it with `dfx identity new`."
        )
    return Identity.from_pem_file(path)


@dataclass(frozen=True)
class ConnectionContext:
    """Authenticated view of the network for one run.

    Holds the operator identity, the privileged funding identity and the fixed
    addresses of the governance, ledger and factory canisters.
    """

    network: NetworkContext

    operator: Identity

    minter: Identity

    governance: Principal

    ledger: Principal

    snsw: Principal

    @classmethod
    def build(
        cls,
        config: DeploymentConfig,
        identity_name: Optional[str] = None,
        network: Optional[NetworkContext] = None,
        operator: Optional[Identity] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ConnectionContext:
        """Load credentials and connect to the replica.

        Args:
            config (DeploymentConfig): Supplies the canister addresses.
            identity_name (Optional[str]): dfx identity of the operator.
            network (Optional[NetworkContext]): Use this transport instead of connecting
                to the replica found by :func:`~pysns.network.resolve_replica_url`.
            operator (Optional[Identity]): Use this identity instead of loading a dfx one.
            env: Environment variables, ``os.environ`` by default.

        Raises:
            :class:`IdentityException`: When an identity cannot be loaded.
            :class:`ConnectionException`: When the replica is unreachable.
        """
        if operator is None:
            operator = load_dfx_identity(identity_name, env)
        minter = Identity.minting()
        if network is None:
            url = resolve_replica_url(env)
            agent_network = AgentNetworkContext(url)
            agent_network.ping()
            logger.info(f"Connected to replica at {url}")
            network = agent_network
        logger.info(f"Operator principal: {operator.principal}")
        return cls(
            network=network,
            operator=operator,
            minter=minter,
            governance=config.governance,
            ledger=config.ledger,
            snsw=config.snsw,
        )
