"""Manager providers for route dependencies.

Routes receive their managers through these functions so tests can replace
them with app.dependency_overrides.
"""

from chats import ChatManager
from chats.realtime import manager as connection_manager
from listings import ListingManager, WishlistManager
from swaps import SwapManager
from vision import GeminiClient

def get_listing_manager() -> ListingManager:
    return ListingManager()

def get_wishlist_manager() -> WishlistManager:
    return WishlistManager()

def get_swap_manager() -> SwapManager:
    return SwapManager()

def get_chat_manager() -> ChatManager:
    return ChatManager()

def get_vision_client() -> GeminiClient:
    return GeminiClient()

def get_connection_manager():
    return connection_manager
