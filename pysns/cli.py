"""Command line entry point: ``pysns <command>``."""

from __future__ import annotations

import argparse
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.deploy import DeploymentPipeline
from pysns.exception import InvalidArgumentException, PySNSException
from pysns.key import Identity, load_seed
from pysns.logging import logger, set_verbosity
from pysns.neurons import (
    add_hotkey,
    add_sns_hotkey,
    check_deployed,
    create_neuron,
    disburse_participant_neuron,
    get_balance,
    increase_dissolve_delay,
    list_neurons,
    list_participant_neurons,
    mint_icp,
    set_dissolving,
)
from pysns.participants import derive_participant
from pysns.principal import Principal
from pysns.record import DeploymentRecord, DeploymentRecorder
from pysns.sns_config import load_logo
from pysns.types import E8S_PER_TOKEN, format_tokens

__all__ = ["build_parser", "main", "parse_tokens"]


def parse_tokens(text: str) -> int:
    """Convert a decimal token amount such as ``"1.5"`` into e8s."""
    try:
        e8s = Decimal(text) * E8S_PER_TOKEN
    except InvalidOperation as e:
        raise InvalidArgumentException(f"Invalid token amount: {text}") from e
    if e8s != e8s.to_integral_value() or e8s < 0:
        raise InvalidArgumentException(f"Token amount must be non-negative with at most 8 decimals: {text}")
    return int(e8s)


def _config(args: argparse.Namespace) -> DeploymentConfig:
    return DeploymentConfig(output_dir=args.output_dir)


def _context(args: argparse.Namespace, config: DeploymentConfig) -> ConnectionContext:
    return ConnectionContext.build(config, identity_name=args.identity)


def _record(args: argparse.Namespace) -> DeploymentRecord:
    return DeploymentRecorder(args.output_dir).read()


def _sns_governance(record: DeploymentRecord) -> Principal:
    (governance,) = record.deployed.require("governance")
    return governance


def _participant_identity(args: argparse.Namespace, record: DeploymentRecord) -> Identity:
    """Identity of participant ``args.participant``, from its seed file when recorded."""
    ordinal = args.participant
    if ordinal < 1:
        raise InvalidArgumentException(f"Participant ordinals start at 1: {ordinal}")
    if ordinal <= len(record.participants):
        try:
            return Identity.from_seed(load_seed(record.participants[ordinal - 1].seed_file))
        except PySNSException as e:
            logger.warning(f"{e}. Deriving participant {ordinal} from its ordinal.")
    return derive_participant(ordinal).identity


def cmd_deploy(args: argparse.Namespace) -> int:
    config = DeploymentConfig(
        output_dir=args.output_dir,
        participant_count=args.participants,
        participant_concurrency=args.concurrency,
    )
    context = _context(args, config)
    result = DeploymentPipeline(context, config, logo=load_logo(args.logo)).run()
    print(f"Proposal: {result.proposal_id}")
    for name, value in result.record.deployed.to_primitive().items():
        print(f"{name}: {value}")
    for participant in result.participants:
        status = "registered" if participant.registered else "NOT registered"
        print(f"participant {participant.ordinal}: {participant.principal} ({status})")
    return 0


def cmd_add_hotkey(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    hot_key = Principal.from_str(args.hotkey)
    if args.participant is not None:
        record = _record(args)
        add_sns_hotkey(
            context,
            _sns_governance(record),
            _participant_identity(args, record),
            hot_key,
            args.permissions,
        )
    elif args.neuron_id is not None:
        add_hotkey(context, args.neuron_id, hot_key)
    else:
        raise InvalidArgumentException("Either --neuron-id or --participant is required")
    return 0


def cmd_list_neurons(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    if args.participant is not None:
        record = _record(args)
        identity = _participant_identity(args, record)
        neurons = list_participant_neurons(context, _sns_governance(record), identity.principal)
        for n in neurons:
            print(
                f"{n.id_hex}  stake {format_tokens(n.cached_neuron_stake_e8s):>14}  "
                f"dissolve delay {n.dissolve_delay_seconds}s"
                f"{'  (dissolving)' if n.dissolving else ''}"
            )
    else:
        for n in list_neurons(context):
            print(
                f"{n.id:>20}  stake {format_tokens(n.cached_neuron_stake_e8s):>14}  "
                f"dissolve delay {n.dissolve_delay_seconds}s"
                f"{'  (dissolving)' if n.dissolving else ''}"
            )
    return 0


def cmd_mint(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    to = Principal.from_str(args.to) if args.to else context.operator.principal
    block = mint_icp(context, to, parse_tokens(args.amount), config)
    print(f"Block: {block}")
    return 0


def cmd_create_neuron(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    memo = args.memo
    if memo is None:
        memo = len(context.network.list_neurons(context.operator, context.governance)) + 1
    neuron_id = create_neuron(
        context, parse_tokens(args.amount), memo, dissolve_delay=args.dissolve_delay
    )
    print(f"Neuron: {neuron_id}")
    return 0


def cmd_disburse(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    record = _record(args)
    to = Principal.from_str(args.to) if args.to else None
    block = disburse_participant_neuron(
        context, _sns_governance(record), _participant_identity(args, record), to
    )
    print(f"Block: {block}")
    return 0


def cmd_increase_dissolve_delay(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    increase_dissolve_delay(context, args.neuron_id, args.seconds)
    return 0


def cmd_manage_dissolving(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    set_dissolving(context, args.neuron_id, args.action == "start")
    return 0


def cmd_get_balance(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    owner = Principal.from_str(args.principal) if args.principal else context.operator.principal
    ledger = None
    if args.sns:
        (ledger,) = _record(args).deployed.require("ledger")
    balance = get_balance(context, owner, args.subaccount, ledger=ledger)
    print(f"{format_tokens(balance)} {'SNS' if args.sns else 'ICP'} ({balance} e8s)")
    return 0


def cmd_check_deployed(args: argparse.Namespace) -> int:
    config = _config(args)
    context = _context(args, config)
    deployed = check_deployed(context)
    print("SNS deployed" if deployed else "No SNS deployed")
    return 0 if deployed else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pysns", description="Deploy and operate an SNS on a local replica")
    p.add_argument("--identity", default=None, help="dfx identity of the operator")
    p.add_argument("--output-dir", default="generated")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("deploy", help="Run the full SNS deployment")
    sp.add_argument("--participants", type=int, default=5)
    sp.add_argument("--concurrency", type=int, default=3)
    sp.add_argument("--logo", default=None, help="PNG logo of the SNS")
    sp.set_defaults(func=cmd_deploy)

    sp = sub.add_parser("add-hotkey", help="Add a hotkey to an ICP neuron or a participant's SNS neuron")
    sp.add_argument("--hotkey", required=True)
    sp.add_argument("--neuron-id", type=int, default=None)
    sp.add_argument("--participant", type=int, default=None)
    sp.add_argument("--permissions", type=int, nargs="+", default=None)
    sp.set_defaults(func=cmd_add_hotkey)

    sp = sub.add_parser("list-neurons", help="List ICP neurons, or a participant's SNS neurons")
    sp.add_argument("--participant", type=int, default=None)
    sp.set_defaults(func=cmd_list_neurons)

    sp = sub.add_parser("mint", help="Mint ICP from the minting account")
    sp.add_argument("--amount", required=True, help="ICP, e.g. 10 or 0.5")
    sp.add_argument("--to", default=None, help="Receiver principal, the operator by default")
    sp.set_defaults(func=cmd_mint)

    sp = sub.add_parser("create-neuron", help="Stake ICP into a new neuron")
    sp.add_argument("--amount", required=True, help="ICP to stake")
    sp.add_argument("--memo", type=int, default=None)
    sp.add_argument("--dissolve-delay", type=int, default=None, help="Seconds")
    sp.set_defaults(func=cmd_create_neuron)

    sp = sub.add_parser("disburse", help="Disburse a participant's SNS neuron")
    sp.add_argument("--participant", type=int, required=True)
    sp.add_argument("--to", default=None)
    sp.set_defaults(func=cmd_disburse)

    sp = sub.add_parser("increase-dissolve-delay", help="Increase an ICP neuron's dissolve delay")
    sp.add_argument("--neuron-id", type=int, required=True)
    sp.add_argument("--seconds", type=int, required=True)
    sp.set_defaults(func=cmd_increase_dissolve_delay)

    sp = sub.add_parser("manage-dissolving", help="Start or stop dissolving an ICP neuron")
    sp.add_argument("--neuron-id", type=int, required=True)
    sp.add_argument("action", choices=["start", "stop"])
    sp.set_defaults(func=cmd_manage_dissolving)

    sp = sub.add_parser("get-balance", help="ICP or SNS token balance of an account")
    sp.add_argument("--principal", default=None)
    sp.add_argument("--subaccount", default=None, help="Hex encoded 32-byte subaccount")
    sp.add_argument("--sns", action="store_true", help="Query the deployed SNS ledger")
    sp.set_defaults(func=cmd_get_balance)

    sp = sub.add_parser("check-deployed", help="Exit 0 if any SNS is deployed, 1 otherwise")
    sp.set_defaults(func=cmd_check_deployed)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbosity(args.verbose)
    try:
        return int(args.func(args) or 0)
    except PySNSException as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
