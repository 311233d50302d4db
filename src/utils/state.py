from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from typing import Optional

from db.models import UserProfile
from utils.config import settings
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class SessionState:
    """
    The logged-in profile, owned by the app and reached through `app.state`.

    The profile is written to `session_path` as JSON on login and removed on
    logout; a readable file there means someone is logged in.
    """

    profile: Optional[UserProfile] = None
    session_path: str = settings.session_path

    @property
    def is_authenticated(self) -> bool:
        return self.profile is not None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role if self.profile else None

    @property
    def shop_id(self) -> Optional[str]:
        return self.profile.shop_id if self.profile else None

    def login(self, profile: UserProfile) -> None:
        self.profile = profile
        self.save()

    def logout(self) -> None:
        self.profile = None
        if os.path.exists(self.session_path):
            os.remove(self.session_path)

    def save(self) -> None:
        if self.profile is None:
            return
        folder = os.path.dirname(self.session_path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.session_path, "w", encoding="utf-8") as f:
            json.dump(dataclasses.asdict(self.profile), f)

    def restore(self) -> Optional[UserProfile]:
        """
        Load a previously saved profile, if any.
        A corrupt or outdated file is discarded and treated as logged out.
        """
        if not os.path.exists(self.session_path):
            return None
        try:
            with open(self.session_path, "r", encoding="utf-8") as f:
                self.profile = UserProfile(**json.load(f))
        except (OSError, ValueError, TypeError) as e:
            _logger.warning(f"Discarding unreadable session file: {e}")
            self.logout()
            return None
        return self.profile
