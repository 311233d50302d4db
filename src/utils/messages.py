from typing import Optional

from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired when user logged in, so the screens can refresh
    """

    bubble = True


class InventoryChangedMessage(Message):
    """
    Fired after stock of a shop was written (stock added, sale, conversion, admin edit).
    Screens showing that shop re-fetch. shop_id None means "any shop may have changed".

    Post to the app; it hands a copy to the active screen.
    """

    bubble = False

    def __init__(self, shop_id: Optional[str] = None) -> None:
        super().__init__()
        self.shop_id = shop_id


class SalesChangedMessage(Message):
    """
    Fired when a sale is recorded, edited or deleted.
    """

    bubble = False

    def __init__(self, shop_id: Optional[str] = None) -> None:
        super().__init__()
        self.shop_id = shop_id


class ProfilesChangedMessage(Message):
    """
    Fired by user management after creating, editing or deleting a profile
    """

    bubble = False


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
