"""
Session — one shopper's cart bound to durable storage.

    from charmcart.session import CartSession

    session = CartSession(store, gateway, session_id="sess_1")
    await session.login("user_42")
"""

from charmcart.session._session import CartSession

__all__ = ("CartSession",)
