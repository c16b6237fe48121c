from textual.message import Message

from services.session import SessionState


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Posted by the login screen once the session manager reports success
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    Posted by the sidebar when the user confirms logging out
    """

    bubble = True


class SessionChangedMessage(Message):
    """
    Mirrors every SessionManager transition onto the message queue,
    so screens can re-render without touching the session directly
    """

    bubble = True

    def __init__(self, state: SessionState) -> None:
        super().__init__()
        self.state = state


class CartChangedMessage(Message):
    """
    Fired after any cart mutation (add, quantity change, remove, clear, move from wishlist)
    Must be posted at App level to reach screens that are not active
    """

    bubble = True


class WishlistChangedMessage(Message):
    bubble = True
