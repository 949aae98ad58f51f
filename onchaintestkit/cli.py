"""
onchaintestkit command line

Usage:
    # Check that anvil and the contract artifacts are available
    onchaintestkit check --project-root ./contracts

    # Run a local node until Ctrl+C
    onchaintestkit node --chain-id 1337

    # Print the CREATE2 address of a contract
    onchaintestkit predict SimpleToken --project-root ./contracts --salt 0x01

    # Deploy a contract on a throwaway node
    onchaintestkit demo SimpleToken --project-root ./contracts --salt 0x01
"""

import argparse
import json
import logging
import sys
import time
from typing import Any, List, Optional

from eth_utils import add_0x_prefix, remove_0x_prefix

from .check_setup import check_setup
from .constants import DEFAULT_CHAIN_ID, DEFAULT_DEV_ADDRESS, PROXY_ADDRESS
from .contracts import SmartContractManager
from .exceptions import OnchainTestKitError
from .node import LocalNodeManager
from .types import ContractDeployment, NodeConfig


def _salt(value: str) -> str:
    """Left-pad a hex salt to 32 bytes."""
    digits = remove_0x_prefix(value)
    if len(digits) > 64:
        raise argparse.ArgumentTypeError(f"Salt longer than 32 bytes: {value}")
    try:
        int(digits or '0', 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Salt is not hex: {value}")
    return add_0x_prefix(digits.rjust(64, '0'))


def _json_args(value: str) -> List[Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON: {e}")
    if not isinstance(parsed, list):
        raise argparse.ArgumentTypeError("Constructor args must be a JSON array")
    return parsed


def _add_node_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Preferred port (a random free port is used if taken)'
    )
    parser.add_argument(
        '--chain-id',
        type=int,
        default=None,
        help=f'Chain ID (default: $E2E_TEST_CHAIN_ID or {DEFAULT_CHAIN_ID})'
    )
    parser.add_argument(
        '--fork-url',
        type=str,
        default=None,
        help='RPC URL to fork from'
    )
    parser.add_argument(
        '--fork-block-number',
        type=int,
        default=None,
        help='Block to fork at (default: latest)'
    )
    parser.add_argument(
        '--block-time',
        type=int,
        default=None,
        help='Seconds between blocks (default: mine on every transaction)'
    )
    parser.add_argument(
        '--mnemonic',
        type=str,
        default=None,
        help='Mnemonic for the dev accounts'
    )
    parser.add_argument(
        '--anvil-path',
        type=str,
        default=None,
        help='Path to the anvil binary'
    )


def _add_contract_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        'contract',
        help='Contract name, e.g. SimpleToken'
    )
    parser.add_argument(
        '--project-root',
        type=str,
        required=True,
        help='Foundry project holding the out/ build directory'
    )
    parser.add_argument(
        '--salt',
        type=_salt,
        default=_salt('0x0'),
        help='CREATE2 salt, left-padded to 32 bytes (default: 0x0)'
    )
    parser.add_argument(
        '--args',
        type=_json_args,
        default=[],
        help='Constructor arguments as a JSON array (default: [])'
    )


def _node_config(args: argparse.Namespace) -> NodeConfig:
    # Flags left unset fall back to the E2E_TEST_* environment
    overrides = {
        'port': args.port,
        'chain_id': args.chain_id,
        'fork_url': args.fork_url,
        'fork_block_number': args.fork_block_number,
        'block_time': args.block_time,
        'mnemonic': args.mnemonic,
    }
    return NodeConfig.from_env(**{k: v for k, v in overrides.items() if v is not None})


def cmd_check(args: argparse.Namespace) -> int:
    return 0 if check_setup(args.project_root, args.anvil_path) else 1


def cmd_node(args: argparse.Namespace) -> int:
    node = LocalNodeManager(_node_config(args), anvil_path=args.anvil_path)
    node.start()
    try:
        print(f"✓ Anvil running")
        print(f"  RPC URL: {node.rpc_url}")
        print(f"  Chain ID: {node.rpc.chain_id()}")
        print(f"  PID: {node.pid}")
        print("  Press Ctrl+C to stop")
        while node.is_running:
            time.sleep(1)
        print("❌ Anvil exited unexpectedly")
        for line in node.output_tail:
            print(f"  {line}")
        return 1
    except KeyboardInterrupt:
        print()
        return 0
    finally:
        node.stop()
        print("✓ Anvil stopped")


def cmd_predict(args: argparse.Namespace) -> int:
    manager = SmartContractManager(args.project_root)
    address = manager.predict_address(args.contract, args.salt, args.args)
    print(address)
    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    manager = SmartContractManager(args.project_root)
    with LocalNodeManager(_node_config(args), anvil_path=args.anvil_path) as node:
        print(f"✓ Anvil ready at {node.rpc_url}")
        manager.initialize(node)
        print(f"✓ Deterministic deployment proxy at {PROXY_ADDRESS}")
        address = manager.deploy_contract(ContractDeployment(
            name=args.contract,
            salt=args.salt,
            deployer=DEFAULT_DEV_ADDRESS,
            args=args.args,
        ))
        print(f"✓ {args.contract} deployed at {address}")
        print(f"  Code size: {len(node.rpc.get_code(address))} bytes")
    print("✓ Anvil stopped")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='onchaintestkit',
        description='Local Anvil nodes and deterministic contract deployment for end-to-end tests',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check setup
  onchaintestkit check --project-root ./contracts

  # Run a node forked from a public RPC
  onchaintestkit node --fork-url https://sepolia.base.org --chain-id 84532

  # Predict and deploy a contract with constructor args
  onchaintestkit predict Token --project-root ./contracts --salt 0x01 --args '["Test", "TST"]'
  onchaintestkit demo Token --project-root ./contracts --salt 0x01 --args '["Test", "TST"]'
        """
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Show debug logs, including node output'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    check_parser = subparsers.add_parser('check', help='Check anvil and contract artifacts')
    check_parser.add_argument(
        '--project-root',
        type=str,
        default=None,
        help='Foundry project to check (default: $E2E_CONTRACT_PROJECT_ROOT)'
    )
    check_parser.add_argument(
        '--anvil-path',
        type=str,
        default=None,
        help='Path to the anvil binary'
    )
    check_parser.set_defaults(func=cmd_check)

    node_parser = subparsers.add_parser('node', help='Run a local node until interrupted')
    _add_node_arguments(node_parser)
    node_parser.set_defaults(func=cmd_node)

    predict_parser = subparsers.add_parser('predict', help='Print the CREATE2 address of a contract')
    _add_contract_arguments(predict_parser)
    predict_parser.set_defaults(func=cmd_predict)

    demo_parser = subparsers.add_parser('demo', help='Deploy a contract on a throwaway node')
    _add_node_arguments(demo_parser)
    _add_contract_arguments(demo_parser)
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        return args.func(args)
    except OnchainTestKitError as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
