import logging
import os
from typing import Optional

from dotenv import load_dotenv
from web3 import Web3

from withdrawal.custom_errors import ConfigurationError
from .config import ENV

logger = logging.getLogger(__name__)


load_dotenv()


def get_env(name: ENV) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


def get_web3(rpc_url: str) -> Web3:
    if not rpc_url:
        raise ConfigurationError("RPC endpoint must not be empty")

    w3 = Web3(Web3.HTTPProvider(rpc_url))
    logger.debug("Created provider for %s", rpc_url)

    return w3


def get_l1_web3(rpc_url: Optional[str] = None) -> Web3:
    url = rpc_url or get_env(ENV.L1_RPC_URL)

    if not url:
        raise ConfigurationError(
            f"L1 RPC endpoint missing. Pass `--rpc` or store `{ENV.L1_RPC_URL}` in .env"
        )

    return get_web3(url)
