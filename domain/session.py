import json
import logging
from pathlib import Path
from typing import Any

from domain.errors import AuthRequired
from domain.models import Session


logger = logging.getLogger(__name__)


class SessionProvider:
    """Holds the live session and mirrors its identity fields to disk."""

    def __init__(self, session_file: Path | None = None) -> None:
        self.session_file = session_file
        self.session: Session | None = None

    @property
    def session_id(self) -> str | None:
        return None if self.session is None else self.session.session_id

    def start(self, session: Session, *, persist: bool = True) -> None:
        self.session = session
        if persist:
            self.save()

    def save(self) -> None:
        if self.session_file is None or self.session is None:
            return
        with open(self.session_file, "w") as f:
            json.dump(self.session.to_dict(), f)

    def stored(self) -> Session | None:
        if self.session_file is None or not self.session_file.exists():
            return None
        try:
            with open(self.session_file) as f:
                data = json.load(f)
            return Session(
                session_id=data["sessionId"],
                user_id=data["userId"],
                username=data["username"],
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return None

    def clear(self) -> None:
        self.session = None
        if self.session_file is not None:
            self.session_file.unlink(missing_ok=True)


class SessionGate:
    def __init__(self, provider: SessionProvider) -> None:
        self.provider = provider

    def authorize(self, request: dict[str, Any]) -> dict[str, Any]:
        if request.get("sessionId"):
            return request
        session_id = self.provider.session_id
        if not session_id:
            raise AuthRequired("Log in to do that.")
        return {**request, "sessionId": session_id}
