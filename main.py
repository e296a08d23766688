"""
Drive one OP Stack withdrawal to its next lifecycle step.

Run it once to prove the withdrawal, then again after the finalization
period to finalize it. Every run reads the current state from chain, so it
is safe to run repeatedly.

    python main.py --network op-sepolia --withdrawal 0x<l2 tx hash> --dry-run
"""

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from web3 import Web3

from signers.signer import HardwareWallet, Signer, create_signer
from utils.config import (
    CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_HD_PATH,
    ENV,
    NetworkName,
    resolve_network_profile,
)
from utils.providers import get_env, get_l1_web3, get_web3
from withdrawal.confirmation import ConfirmationWaiter
from withdrawal.custom_errors import (
    ConfigurationError,
    SignerConfigurationError,
    WithdrawalError,
)
from withdrawal.gas_planner import GasPlanner, validate_gas_config
from withdrawal.messages import parse_tx_hash
from withdrawal.op_stack import create_withdrawer
from withdrawal.orchestrator import WithdrawalOrchestrator
from withdrawal.submission import TransactionSubmitter
from withdrawal.types import GasConfig, WithdrawalOutcome

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warn", "error"]

HardwareWalletFactory = Callable[[], HardwareWallet]


def gwei_amount(value: str) -> int:
    """argparse type: a non-negative gwei amount, returned in wei."""
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid gwei amount: {value}") from None

    if not amount.is_finite() or amount < 0:
        raise argparse.ArgumentTypeError(f"gwei amount must be >= 0, got {value}")

    return int(Web3.to_wei(amount, "gwei"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Prove and finalize an OP Stack L2 -> L1 withdrawal"
    )

    parser.add_argument(
        "--withdrawal", required=True, help="L2 transaction hash that initiated the withdrawal"
    )
    parser.add_argument(
        "--rpc", help=f"L1 RPC endpoint (defaults to `{ENV.L1_RPC_URL}` from .env)"
    )

    network = parser.add_argument_group("network")
    network.add_argument(
        "--network",
        choices=[name.value for name in NetworkName],
        help="Preset network",
    )
    network.add_argument("--l2-rpc", help="Custom network: L2 RPC endpoint")
    network.add_argument("--portal-address", help="Custom network: OptimismPortal address")
    network.add_argument(
        "--l2oo-address", help="Custom network: L2OutputOracle address (output-oracle chains)"
    )
    network.add_argument(
        "--dgf-address", help="Custom network: DisputeGameFactory address (fault proof chains)"
    )

    signer = parser.add_argument_group("signer")
    signer_backend = signer.add_mutually_exclusive_group()
    signer_backend.add_argument("--private-key", help="Hex encoded private key")
    signer_backend.add_argument("--mnemonic", help="BIP-39 mnemonic")
    signer_backend.add_argument(
        "--ledger",
        action="store_true",
        help=(
            "Sign with a hardware wallet. Only available when the embedding code "
            "passes a `hardware_wallet_factory` to `main()`"
        ),
    )
    signer.add_argument(
        "--hd-path",
        default=DEFAULT_HD_PATH,
        help=f"Derivation path for --mnemonic / --ledger (default: {DEFAULT_HD_PATH})",
    )

    gas = parser.add_argument_group("gas")
    gas.add_argument("--gas-price", type=gwei_amount, help="Legacy gas price in gwei")
    gas.add_argument("--max-fee", type=gwei_amount, help="EIP-1559 max fee per gas in gwei")
    gas.add_argument(
        "--max-priority-fee", type=gwei_amount, help="EIP-1559 max priority fee per gas in gwei"
    )
    gas.add_argument(
        "--max-gas-price",
        type=gwei_amount,
        help="Refuse to send when the gas price would exceed this many gwei",
    )
    gas.add_argument("--gas-limit", type=int, default=0, help="Explicit gas limit")
    gas.add_argument(
        "--gas-multiplier",
        type=float,
        default=1.0,
        help="Scale the simulated gas estimate by this factor (>= 1.0)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the transaction that would be sent without signing or sending it",
    )
    parser.add_argument(
        "--confirmation-timeout",
        type=float,
        default=CONFIRMATION_TIMEOUT_SECONDS,
        help="Seconds to wait for a transaction to be mined",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="info")

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def gas_config_from_args(args: argparse.Namespace) -> GasConfig:
    return GasConfig(
        gas_price=args.gas_price,
        max_fee_per_gas=args.max_fee,
        max_priority_fee_per_gas=args.max_priority_fee,
        gas_limit=args.gas_limit,
        gas_multiplier=args.gas_multiplier,
        max_gas_price=args.max_gas_price,
    )


def signer_from_args(
    args: argparse.Namespace,
    hardware_wallet_factory: Optional[HardwareWalletFactory] = None,
) -> Signer:
    private_key = args.private_key
    mnemonic = args.mnemonic

    if not (private_key or mnemonic or args.ledger):
        private_key = get_env(ENV.PRIVATE_KEY)
        mnemonic = get_env(ENV.MNEMONIC)

    hardware_wallet = None
    if args.ledger:
        if hardware_wallet_factory is None:
            raise SignerConfigurationError(
                "`--ledger` needs a hardware wallet backend, pass `hardware_wallet_factory` "
                "to `main()`"
            )
        hardware_wallet = hardware_wallet_factory()

    return create_signer(
        private_key=private_key,
        mnemonic=mnemonic,
        hd_path=args.hd_path,
        hardware_wallet=hardware_wallet,
    )


def format_outcome(outcome: WithdrawalOutcome) -> str:
    lines = [f"State:  {outcome.state}", f"Action: {outcome.action}"]

    if outcome.tx_hash is not None:
        lines.append(f"Tx:     {outcome.tx_hash.to_0x_hex()}")

    if outcome.preview is not None:
        lines.append("Dry run: nothing was signed or sent")

    if outcome.reason:
        lines.append(f"Reason: {outcome.reason}")

    return "\n".join(lines)


def run(
    args: argparse.Namespace,
    hardware_wallet_factory: Optional[HardwareWalletFactory] = None,
) -> WithdrawalOutcome:
    # configuration is checked in full before touching any chain
    gas_config = gas_config_from_args(args)
    validate_gas_config(gas_config)

    if args.confirmation_timeout <= 0:
        raise ConfigurationError(
            f"`--confirmation-timeout` must be positive, got {args.confirmation_timeout}"
        )

    profile = resolve_network_profile(
        network=args.network,
        l2_rpc_url=args.l2_rpc,
        portal_address=args.portal_address,
        output_oracle_address=args.l2oo_address,
        dispute_game_factory_address=args.dgf_address,
    )
    l2_tx_hash = parse_tx_hash(args.withdrawal)
    signer = signer_from_args(args, hardware_wallet_factory)

    l1_provider = get_l1_web3(args.rpc)
    l2_provider = get_web3(profile.l2_rpc_url)

    logger.info(
        "Network %s (%s), signer %s", profile.name, profile.strategy, signer.address
    )

    waiter = ConfirmationWaiter(l1_provider, timeout=args.confirmation_timeout)
    submitter = TransactionSubmitter(
        l1_provider,
        signer,
        GasPlanner(l1_provider),
        gas_config,
        waiter,
        dry_run=args.dry_run,
    )

    withdrawer = create_withdrawer(profile, l1_provider, l2_provider, l2_tx_hash, submitter)

    return WithdrawalOrchestrator(withdrawer).run()


def main(
    argv: Optional[List[str]] = None,
    hardware_wallet_factory: Optional[HardwareWalletFactory] = None,
) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        outcome = run(args, hardware_wallet_factory)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except WithdrawalError as e:
        stage = f" during `{e.stage}`" if e.stage else ""
        print(f"Withdrawal failed{stage}: {e}", file=sys.stderr)
        logger.debug("Failure details", exc_info=e)
        return 1

    print(format_outcome(outcome))
    return 0


if __name__ == "__main__":
    sys.exit(main())
