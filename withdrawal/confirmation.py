import logging
import threading
import time
from typing import Callable, Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.types import TxReceipt

from utils.config import CONFIRMATION_POLL_INTERVAL_SECONDS, CONFIRMATION_TIMEOUT_SECONDS
from .custom_errors import (
    ConfirmationCancelledError,
    ConfirmationTimeoutError,
    TransactionRevertedError,
)

logger = logging.getLogger(__name__)


class ConfirmationWaiter:
    """
    Polls for the receipt of a submitted transaction until it is mined, it
    reverts, the deadline passes or `cancel_event` is set.

    Only "receipt not found" is retried. Transport errors propagate and the
    transaction is never resubmitted.

    Parameters
    ----------
    `provider` : Web3
    `timeout` : float
        Seconds to wait for each transaction.
    `poll_interval` : float
    `clock` : Callable[[], float]
        Monotonic clock, injectable for tests.
    `sleep` : Callable[[float], object], optional
        Defaults to `cancel_event.wait` when an event is given, so a
        cancellation interrupts the sleep, and to `time.sleep` otherwise.
    `cancel_event` : threading.Event, optional
    """

    def __init__(
        self,
        provider: Web3,
        timeout: float = CONFIRMATION_TIMEOUT_SECONDS,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.provider = provider
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.cancel_event = cancel_event
        self._clock = clock

        if sleep is not None:
            self._sleep = sleep
        elif cancel_event is not None:
            self._sleep = cancel_event.wait
        else:
            self._sleep = time.sleep

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def wait_for_success(self, tx_hash: HexBytes) -> TxReceipt:
        tx_hash = HexBytes(tx_hash)
        deadline = self._clock() + self.timeout

        while True:
            if self._cancelled():
                raise ConfirmationCancelledError(tx_hash)

            try:
                receipt = self.provider.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise ConfirmationTimeoutError(tx_hash)

                print("waiting for tx confirmation")
                logger.debug(
                    "%s not mined yet, %.0fs left", tx_hash.to_0x_hex(), remaining
                )
                self._sleep(min(self.poll_interval, remaining))
                continue

            if receipt["status"] != 1:
                raise TransactionRevertedError(tx_hash)

            print(f"{tx_hash.to_0x_hex()} confirmed")
            logger.info(
                "%s mined in block %s", tx_hash.to_0x_hex(), receipt.get("blockNumber")
            )
            return receipt
