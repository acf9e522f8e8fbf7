"""Bearer-token gate backed by Firebase Authentication."""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError

import database
from database import Store

logger = logging.getLogger(__name__)


class InvalidToken(Exception):
    """Raised when an identity token cannot be verified."""


class IdentityVerifier:
    def __init__(self, store: Optional[Store]):
        self.app = store.app if store is not None else None

    def verify(self, token: str) -> str:
        """Return the uid the token was issued to."""
        if self.app is None:
            raise HTTPException(status_code=500, detail="Database not configured")
        try:
            decoded = firebase_auth.verify_id_token(token, app=self.app)
        except (ValueError, FirebaseError) as e:
            raise InvalidToken(str(e)) from e
        return decoded["uid"]


def get_identity() -> IdentityVerifier:
    return IdentityVerifier(database.init_store())


def require_user(
    authorization: Optional[str] = Header(None),
    identity: IdentityVerifier = Depends(get_identity),
) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    token = authorization.split("Bearer ", 1)[1]
    try:
        return identity.verify(token)
    except InvalidToken as e:
        logger.warning("Rejected identity token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Token")
