import logging
from typing import Optional

from web3.contract import Contract

from .custom_errors import NoGamesError, NoQualifyingGameError
from .types import DisputeGameRef

logger = logging.getLogger(__name__)


def game_l2_block_number(extra_data: bytes) -> int:
    """The L2 block a game proposes is the first 32 bytes of its `extraData`."""
    return int.from_bytes(bytes(extra_data)[:32], "big")


class GameLocator:
    """
    Finds dispute games in the `DisputeGameFactory` that a withdrawal can be
    proven against.

    Only games of the portal's respected game type are considered. Their
    proposed L2 block numbers are assumed non-decreasing with the game index,
    which is what makes the binary search in `find_earliest_game` valid.

    Parameters
    ----------
    factory : Contract
        DisputeGameFactory on L1.

    portal : Contract
        OptimismPortal2 on L1, queried for `respectedGameType()`.
    """

    def __init__(self, factory: Contract, portal: Contract) -> None:
        self.factory = factory
        self.portal = portal

    def respected_game_type(self) -> int:
        return self.portal.functions.respectedGameType().call()

    def game_count(self) -> int:
        return self.factory.functions.gameCount().call()

    def _game_at_or_before(self, game_type: int, index: int) -> Optional[DisputeGameRef]:
        """Most recent game of `game_type` with an index <= `index`, if any."""
        games = self.factory.functions.findLatestGames(game_type, index, 1).call()

        if not games:
            return None

        game = games[0]

        return DisputeGameRef(
            index=game[0],
            l2_block_number=game_l2_block_number(game[4]),
            root_claim=bytes(game[3]),
            timestamp=game[2],
            metadata=bytes(game[1]),
            extra_data=bytes(game[4]),
        )

    def latest_game(self) -> DisputeGameRef:
        game_count = self.game_count()
        if game_count == 0:
            raise NoGamesError("No dispute games have been created yet")

        game_type = self.respected_game_type()
        game = self._game_at_or_before(game_type, game_count - 1)

        if game is None:
            raise NoQualifyingGameError(
                f"No dispute game of the respected type `{game_type}` exists yet"
            )

        return game

    def find_earliest_game(self, l2_block_number: int) -> DisputeGameRef:
        """
        Binary search for the earliest respected game whose proposed L2 block
        is at or after `l2_block_number`.

        Parameters
        ----------
        l2_block_number : int
            L2 block that included the withdrawal.

        Returns
        -------
        DisputeGameRef
        """
        game_type = self.respected_game_type()
        game_count = self.game_count()

        if game_count == 0:
            raise NoGamesError("No dispute games have been created yet")

        lo, hi = 0, game_count - 1
        probes = 0

        while lo < hi:
            mid = (lo + hi) // 2
            game = self._game_at_or_before(game_type, mid)
            probes += 1

            # an empty probe has nothing covering the block yet: search upward
            if game is None or game.l2_block_number < l2_block_number:
                lo = mid + 1
            else:
                hi = mid

        game = self._game_at_or_before(game_type, lo)
        probes += 1

        if game is None:
            raise NoQualifyingGameError(
                f"No dispute game of the respected type `{game_type}` exists yet"
            )

        if game.l2_block_number < l2_block_number:
            raise NoQualifyingGameError(
                f"The latest L2 block proposed in the DisputeGameFactory is "
                f"{game.l2_block_number} and is not past L2 block {l2_block_number} "
                "that includes the withdrawal - the withdrawal cannot be proven yet"
            )

        logger.info(
            "Found game %d proposing L2 block %d for withdrawal block %d (%d probes over %d games)",
            game.index,
            game.l2_block_number,
            l2_block_number,
            probes,
            game_count,
        )

        return game
