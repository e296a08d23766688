import os
import json
import logging
from typing import Any, List, NamedTuple, Optional, Sequence

from eth_typing import ABIComponent
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractCustomError

logger = logging.getLogger(__name__)

ABI_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "withdrawal", "ABI"
)


def apply_gas_multiplier(gas_estimate: int, multiplier: float) -> int:
    if multiplier < 1.0:
        raise ValueError("`multiplier` should be >= 1.0 to ensure sufficient gas")

    return int(gas_estimate * multiplier)


def get_abi(name: str) -> List[Any]:
    path = name if os.path.isabs(name) else os.path.join(ABI_DIR, name)

    if os.path.isfile(path):
        with open(path, "r") as file:
            abi = json.load(file)

        return abi
    else:
        raise FileNotFoundError(f"File path not found: {path}")


class ContractErrorInfo(NamedTuple):
    """
    Named tuple containing contract error information.

    Attributes:
        name: Error name (e.g., "OptimismPortal_ProofNotOldEnough")
        signature: Full error signature (e.g., "OptimismPortal_ProofNotOldEnough()")
        inputs: List of input parameters from ABI
        selector: 4-byte error selector hex string (e.g., "0x80698456")
    """

    name: str
    signature: str
    inputs: Sequence[ABIComponent]
    selector: str


def get_contract_error_info(
    contract: Contract, error: Exception
) -> Optional[ContractErrorInfo]:
    """
    Match a contract error to its ABI definition and return error information.

    Args:
        contract: Web3 Contract instance containing ABI
        error: Exception raised by contract call

    Returns:
        ContractErrorInfo named tuple if matched, None otherwise

    Example:
        >>> try:
        >>>     portal.functions.checkWithdrawal(withdrawal_hash, sender).call()
        >>> except Exception as e:
        >>>     error_info = get_contract_error_info(portal, e)
        >>>     if error_info:
        >>>         print(f"Error: {error_info.name}")
    """
    if not isinstance(error, ContractCustomError):
        return None

    error_selector = HexBytes(error.data if error.data else error.args[0])[:4]
    logger.debug("Decoding contract error selector %s", error_selector.to_0x_hex())

    for item in contract.abi:
        if item.get("type") != "error":
            continue

        error_name = item.get("name")
        if error_name is None:
            continue

        inputs = item.get("inputs", [])

        input_types = []
        for inp in inputs:
            inp_type = inp.get("type")
            if inp_type is None:
                continue
            input_types.append(inp_type)

        signature = f"{error_name}({','.join(input_types)})"

        hash_bytes = Web3.keccak(text=signature)
        selector = HexBytes(hash_bytes[:4])

        if selector == error_selector:
            return ContractErrorInfo(
                name=error_name,
                signature=signature,
                inputs=inputs,
                selector=selector.to_0x_hex(),
            )

    return None
