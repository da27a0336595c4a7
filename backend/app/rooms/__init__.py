"""Room ledger: two-person rooms, their intro flag and preview cache."""

from .pairs import PairLocks, pair_key
from .schemas import Room
from .service import RoomLedger

__all__ = ["PairLocks", "Room", "RoomLedger", "pair_key"]
