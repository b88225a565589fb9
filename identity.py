import logging
from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy.orm import Session

from config import get_settings
from models import SessionSlot

logger = logging.getLogger(__name__)

IDENTITY_SLOT = "auth_identity"


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str


def _serializer(secret: Optional[str] = None) -> URLSafeSerializer:
    return URLSafeSerializer(secret or get_settings().session_secret, salt="identity")


class IdentityStore:
    def __init__(self, session: Session, secret: Optional[str] = None) -> None:
        self.session = session
        self.serializer = _serializer(secret)

    def save(self, identity: Identity) -> None:
        token = self.serializer.dumps({"u": identity.user_id, "e": identity.email})
        slot = self.session.get(SessionSlot, IDENTITY_SLOT)
        if slot is None:
            self.session.add(SessionSlot(key=IDENTITY_SLOT, value=token))
        else:
            slot.value = token
        self.session.flush()

    def load(self) -> Optional[Identity]:
        slot = self.session.get(SessionSlot, IDENTITY_SLOT)
        if slot is None:
            return None
        try:
            data = self.serializer.loads(slot.value)
            return Identity(user_id=int(data["u"]), email=str(data["e"]))
        except (BadSignature, KeyError, TypeError, ValueError):
            logger.warning("identity_slot_invalid: clearing stored identity")
            self.clear()
            return None

    def clear(self) -> None:
        slot = self.session.get(SessionSlot, IDENTITY_SLOT)
        if slot is not None:
            self.session.delete(slot)
            self.session.flush()
