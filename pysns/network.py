"""Replica network resolution, following the dfx conventions."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Optional

from pysns.exception import ConnectionException

__all__ = [
    "DEFAULT_REPLICA_URL",
    "DEFAULT_NETWORK",
    "dfx_config_root",
    "resolve_replica_url",
]

DEFAULT_REPLICA_URL = "http://127.0.0.1:4943"

DEFAULT_NETWORK = "local"


def dfx_config_root(env: Optional[Mapping[str, str]] = None) -> Path:
    """Directory holding dfx ``networks.json`` and the ``identity`` tree."""
    env = os.environ if env is None else env
    if env.get("DFX_CONFIG_ROOT"):
        return Path(env["DFX_CONFIG_ROOT"]) / ".config" / "dfx"
    return Path.home() / ".config" / "dfx"


def resolve_replica_url(env: Optional[Mapping[str, str]] = None) -> str:
    """Find the replica endpoint.

    The first match wins:

    1. ``DFX_REPLICA_URL``
    2. ``DFX_REPLICA_PORT`` on 127.0.0.1
    3. ``bind`` of the ``DFX_NETWORK`` entry (``local`` by default) in ``networks.json``
    4. :data:`DEFAULT_REPLICA_URL`

    Raises:
        :class:`ConnectionException`: When ``networks.json`` exists but is not valid JSON.
    """
    env = os.environ if env is None else env
    if env.get("DFX_REPLICA_URL"):
        return env["DFX_REPLICA_URL"].rstrip("/")
    if env.get("DFX_REPLICA_PORT"):
        return f"http://127.0.0.1:{env['DFX_REPLICA_PORT']}"

    networks_file = dfx_config_root(env) / "networks.json"
    if networks_file.is_file():
        try:
            networks = json.loads(networks_file.read_text())
        except json.JSONDecodeError as e:
            raise ConnectionException(f"Invalid dfx networks file {networks_file}") from e
        network = networks.get(env.get("DFX_NETWORK", DEFAULT_NETWORK), {})
        bind = network.get("bind") if isinstance(network, dict) else None
        if bind:
            return bind if bind.startswith("http") else f"http://{bind}"

    return DEFAULT_REPLICA_URL
