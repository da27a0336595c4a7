"""Process-wide service wiring.

``build_services`` assembles the stores and state machines over one shared
database, one realtime manager and one pair-lock registry. Routers reach them
through ``get_services()``; tests install their own set with
``set_services()``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from app.chat.service import ChatService
from app.config import AppConfig, get_config
from app.connections.service import ConnectionService
from app.db import Database
from app.errors import Unauthorized
from app.identity.service import IdentityStore
from app.messages.gate import MessagingGate
from app.messages.service import MessageLog
from app.realtime.manager import ConnectionManager
from app.realtime.presence import PresenceStore
from app.rooms.pairs import PairLocks
from app.rooms.service import RoomLedger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: AppConfig
    db: Database
    identity: IdentityStore
    rooms: RoomLedger
    messages: MessageLog
    gate: MessagingGate
    connections: ConnectionService
    chat: ChatService
    realtime: ConnectionManager

    def close(self) -> None:
        self.db.close()


def build_services(
    config: AppConfig, presence: Optional[PresenceStore] = None
) -> Services:
    db = Database(config.database.path)
    identity = IdentityStore(db)
    rooms = RoomLedger(db)
    messages = MessageLog(db, rooms)
    locks = PairLocks()
    realtime = ConnectionManager(
        presence=presence, dedup_cache_size=config.chat.dedup_cache_size
    )
    gate = MessagingGate(
        identity, rooms, messages, locks,
        intro_message_limit=config.chat.intro_message_limit,
    )
    connections = ConnectionService(
        db, identity, rooms, locks, realtime,
        credit_grant=config.connections.accept_credit_grant,
    )
    chat = ChatService(
        identity, rooms, messages, gate, realtime,
        max_history_limit=config.chat.max_history_limit,
    )
    return Services(
        config=config,
        db=db,
        identity=identity,
        rooms=rooms,
        messages=messages,
        gate=gate,
        connections=connections,
        chat=chat,
        realtime=realtime,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(get_config())
    return _services


def has_services() -> bool:
    return _services is not None


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Resolve the caller from the ``X-User-Id`` header.

    Token issuance and verification live outside this service; the header
    must name a user known to the identity store.
    """
    if not x_user_id:
        raise Unauthorized("No user provided. Authorization denied.")
    if not get_services().identity.exists(x_user_id):
        raise Unauthorized("User no longer exists.")
    return x_user_id
