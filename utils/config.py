from enum import StrEnum
from typing import Dict, Final, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils.address import is_address, to_checksum_address

from withdrawal.custom_errors import ConfigurationError


class ENV(StrEnum):
    L1_RPC_URL = "L1_RPC_URL"
    PRIVATE_KEY = "PRIVATE_KEY"
    MNEMONIC = "MNEMONIC"


class NetworkName(StrEnum):
    OP_MAINNET = "op-mainnet"
    OP_SEPOLIA = "op-sepolia"
    BASE_MAINNET = "base-mainnet"
    BASE_SEPOLIA = "base-sepolia"


class VerificationStrategy(StrEnum):
    OUTPUT_ORACLE = "output-oracle"
    DISPUTE_GAME = "dispute-game"


class NetworkProfile(NamedTuple):
    """
    Everything needed to reach a target L2 and its L1 contracts.

    Exactly one of `output_oracle_address` / `dispute_game_factory_address`
    is set, matching `strategy`.
    """

    name: str
    strategy: VerificationStrategy
    l2_rpc_url: str
    portal_address: ChecksumAddress
    output_oracle_address: Optional[ChecksumAddress] = None
    dispute_game_factory_address: Optional[ChecksumAddress] = None


# CONFIRMATION

CONFIRMATION_TIMEOUT_SECONDS = 5 * 60
CONFIRMATION_POLL_INTERVAL_SECONDS = 5


# SIGNER

DEFAULT_HD_PATH = "m/44'/60'/0'/0/0"


# DRY RUN

DRY_RUN_DATA_PREVIEW_CHARS = 128


# OP STACK CONFIG

ABI_OPTIMISM_PORTAL = "OptimismPortal.json"
ABI_OPTIMISM_PORTAL2 = "OptimismPortal2.json"
ABI_L2_OUTPUT_ORACLE = "L2OutputOracle.json"
ABI_DISPUTE_GAME_FACTORY = "DisputeGameFactory.json"
ABI_L2_TO_L1_MESSAGE_PASSER = "L2ToL1MessagePasser.json"

L2_TO_L1_MESSAGE_PASSER: Final[ChecksumAddress] = to_checksum_address(
    "0x4200000000000000000000000000000000000016"
)


def _fault_proof_network(
    name: NetworkName, l2_rpc_url: str, portal: str, factory: str
) -> NetworkProfile:
    return NetworkProfile(
        name=name,
        strategy=VerificationStrategy.DISPUTE_GAME,
        l2_rpc_url=l2_rpc_url,
        portal_address=to_checksum_address(portal),
        dispute_game_factory_address=to_checksum_address(factory),
    )


NETWORK_PROFILES: Final[Dict[NetworkName, NetworkProfile]] = {
    NetworkName.OP_MAINNET: _fault_proof_network(
        NetworkName.OP_MAINNET,
        "https://mainnet.optimism.io",
        "0xbEb5Fc579115071764c7423A4f12eDde41f106Ed",
        "0xe5965Ab5962eDc7477C8520243A95517CD252fA9",
    ),
    NetworkName.OP_SEPOLIA: _fault_proof_network(
        NetworkName.OP_SEPOLIA,
        "https://sepolia.optimism.io",
        "0x16FC5058F25648194471939DF75CF27A2FDC48BC",
        "0x05F9613aDB30026FFd634f38e5C4dFd30a197Fa1",
    ),
    NetworkName.BASE_MAINNET: _fault_proof_network(
        NetworkName.BASE_MAINNET,
        "https://mainnet.base.org",
        "0x49048044D57e1C92A77f79988d21Fa8fAF74E97e",
        "0x43edB88C4B80fDD2AdFF2412A7BebF9dF42cB40e",
    ),
    NetworkName.BASE_SEPOLIA: _fault_proof_network(
        NetworkName.BASE_SEPOLIA,
        "https://sepolia.base.org",
        "0x49f53e41452C74589E85cA1677426Ba426459e85",
        "0xd6E6dBf4F7EA0ac412fD8b65ED297e64BB7a06E1",
    ),
}


def _checksum_or_raise(flag: str, value: str) -> ChecksumAddress:
    if not is_address(value):
        raise ConfigurationError(f"`{flag}` is not a valid address: {value}")

    return to_checksum_address(value)


def resolve_network_profile(
    network: Optional[str] = None,
    l2_rpc_url: Optional[str] = None,
    portal_address: Optional[str] = None,
    output_oracle_address: Optional[str] = None,
    dispute_game_factory_address: Optional[str] = None,
) -> NetworkProfile:
    """
    Pick a preset network or assemble a custom one.

    The custom bundle is all-or-nothing: the L2 RPC endpoint, the portal and
    exactly one of the output oracle / dispute game factory must be given
    together. Missing fields are never defaulted.
    """
    custom = {
        "--l2-rpc": l2_rpc_url,
        "--portal-address": portal_address,
        "--l2oo-address": output_oracle_address,
        "--dgf-address": dispute_game_factory_address,
    }
    custom_given = [flag for flag, value in custom.items() if value]

    if network and custom_given:
        raise ConfigurationError(
            f"`--network` cannot be combined with custom network flags: {', '.join(custom_given)}"
        )

    if network:
        try:
            return NETWORK_PROFILES[NetworkName(network)]
        except ValueError:
            known = ", ".join(name.value for name in NetworkName)
            raise ConfigurationError(
                f"Unknown network `{network}`. Expected one of: {known}"
            ) from None

    if not custom_given:
        raise ConfigurationError(
            "Either `--network` or a custom network (`--l2-rpc`, `--portal-address` "
            "and one of `--l2oo-address` / `--dgf-address`) must be provided"
        )

    if output_oracle_address and dispute_game_factory_address:
        raise ConfigurationError(
            "`--l2oo-address` and `--dgf-address` are mutually exclusive"
        )

    missing = [
        flag
        for flag in ("--l2-rpc", "--portal-address")
        if not custom[flag]
    ]
    if not output_oracle_address and not dispute_game_factory_address:
        missing.append("--l2oo-address or --dgf-address")

    if missing:
        raise ConfigurationError(
            f"Custom network is incomplete, missing: {', '.join(missing)}"
        )

    portal = _checksum_or_raise("--portal-address", str(portal_address))

    if dispute_game_factory_address:
        return NetworkProfile(
            name="custom",
            strategy=VerificationStrategy.DISPUTE_GAME,
            l2_rpc_url=str(l2_rpc_url),
            portal_address=portal,
            dispute_game_factory_address=_checksum_or_raise(
                "--dgf-address", dispute_game_factory_address
            ),
        )

    return NetworkProfile(
        name="custom",
        strategy=VerificationStrategy.OUTPUT_ORACLE,
        l2_rpc_url=str(l2_rpc_url),
        portal_address=portal,
        output_oracle_address=_checksum_or_raise(
            "--l2oo-address", str(output_oracle_address)
        ),
    )
