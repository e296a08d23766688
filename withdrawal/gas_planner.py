import logging
import math
from typing import Callable, List, Mapping, Optional

from web3 import Web3
from web3.types import TxParams, Wei

from utils.chain import apply_gas_multiplier
from .custom_errors import GasConfigError, SafetyCapExceededError
from .types import GasConfig

logger = logging.getLogger(__name__)


def _gwei(value: int) -> str:
    return f"{Web3.from_wei(value, 'gwei')} gwei"


def validate_gas_config(config: GasConfig) -> List[str]:
    """
    Check the declared gas policy before any chain I/O happens.

    Returns
    -------
    List[str]
        Warnings for settings that are accepted but have no effect.
    """
    has_legacy = config.gas_price is not None
    has_max_fee = config.max_fee_per_gas is not None
    has_tip = config.max_priority_fee_per_gas is not None

    if has_legacy and (has_max_fee or has_tip):
        raise GasConfigError(
            "`gas_price` cannot be combined with `max_fee_per_gas` / `max_priority_fee_per_gas`"
        )

    if has_max_fee != has_tip:
        raise GasConfigError(
            "`max_fee_per_gas` and `max_priority_fee_per_gas` must be set together"
        )

    if not math.isfinite(config.gas_multiplier) or config.gas_multiplier < 1.0:
        raise GasConfigError(
            f"`gas_multiplier` should be a finite number >= 1.0, got {config.gas_multiplier}"
        )

    if config.gas_limit < 0:
        raise GasConfigError(f"`gas_limit` must be non-negative, got {config.gas_limit}")

    for name in ("gas_price", "max_fee_per_gas", "max_priority_fee_per_gas", "max_gas_price"):
        value = getattr(config, name)
        if value is not None and value < 0:
            raise GasConfigError(f"`{name}` must be non-negative, got {value}")

    if (
        config.max_fee_per_gas is not None
        and config.max_priority_fee_per_gas is not None
        and config.max_priority_fee_per_gas > config.max_fee_per_gas
    ):
        raise GasConfigError("`max_priority_fee_per_gas` cannot exceed `max_fee_per_gas`")

    if config.max_gas_price is not None:
        declared = config.gas_price if has_legacy else config.max_fee_per_gas
        if declared is not None and declared > config.max_gas_price:
            raise SafetyCapExceededError(
                f"Declared gas price {_gwei(declared)} exceeds the safety cap "
                f"{_gwei(config.max_gas_price)}"
            )

    warnings = []
    if config.gas_limit > 0 and config.gas_multiplier > 1.0:
        warnings.append(
            f"`gas_multiplier` ({config.gas_multiplier}) is ignored because an explicit "
            f"`gas_limit` ({config.gas_limit}) is set"
        )

    return warnings


def enforce_price_cap(tx: Mapping, max_gas_price: Optional[int]) -> None:
    """
    Last check on a fully built transaction, covering fee fields the
    submission layer filled in on its own.
    """
    if max_gas_price is None:
        return

    price = tx.get("maxFeePerGas", tx.get("gasPrice"))
    if price is not None and int(price) > max_gas_price:
        raise SafetyCapExceededError(
            f"Transaction gas price {_gwei(int(price))} exceeds the safety cap "
            f"{_gwei(max_gas_price)}"
        )


class GasPlanner:
    """
    Turns the user's declared `GasConfig` into the fee and gas limit fields of
    a transaction.

    Resolution is rebuilt from the declared config on every call, so a gas
    limit estimated for one submission never leaks into the next.

    Parameters
    ----------
    `l1_provider` : Web3
    """

    def __init__(self, l1_provider: Web3) -> None:
        self.l1_provider = l1_provider

    def suggested_gas_price(self) -> int:
        return self.l1_provider.eth.gas_price

    def resolve(self, config: GasConfig, simulate: Callable[[], int]) -> TxParams:
        """
        Parameters
        ----------
        `config` : GasConfig
            Declared gas policy.

        `simulate` : Callable[[], int]
            Runs the intended call without broadcasting and returns its gas
            usage. Only called when `gas_multiplier > 1.0` and no explicit
            `gas_limit` is set.

        Returns
        -------
        TxParams
            `gas` (omitted when left to the submission layer) and fee fields.
        """
        for warning in validate_gas_config(config):
            logger.warning(warning)

        params: TxParams = {}

        if config.gas_limit > 0:
            params["gas"] = config.gas_limit
        elif config.gas_multiplier > 1.0:
            estimated_gas = simulate()
            adjusted_gas = apply_gas_multiplier(estimated_gas, config.gas_multiplier)
            params["gas"] = adjusted_gas
            logger.info(
                "Adjusted gas estimate: original=%d multiplier=%s adjusted=%d",
                estimated_gas,
                config.gas_multiplier,
                adjusted_gas,
            )

        if config.gas_price is not None:
            params["gasPrice"] = Wei(config.gas_price)
        elif config.max_fee_per_gas is not None and config.max_priority_fee_per_gas is not None:
            params["maxFeePerGas"] = Wei(config.max_fee_per_gas)
            params["maxPriorityFeePerGas"] = Wei(config.max_priority_fee_per_gas)
        else:
            suggested = self.suggested_gas_price()
            logger.info("Suggested gas price: %s", _gwei(suggested))

            if config.max_gas_price is not None and suggested > config.max_gas_price:
                raise SafetyCapExceededError(
                    f"Suggested gas price {_gwei(suggested)} exceeds the safety cap "
                    f"{_gwei(config.max_gas_price)}. Retry later or raise `--max-gas-price`."
                )

        return params
