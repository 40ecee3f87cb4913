"""Smart swap matching.

Finds nearby listings that the viewer wants and whose sellers want one of the
viewer's own listings back. Everything here is pure; SwapManager loads the rows.

Tie-break: a seller who wants several of the viewer's listings is matched with
the first one in their wishlist rows, which are loaded ordered by
(created_at, listing_id). Results are sorted by (distance, matched id, your id)
so recomputation over unchanged data yields the same list.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

SMART_SWAP_MATCH = 'SMART_SWAP_MATCH'
DEFAULT_MATCH_LIMIT = 20
UNKNOWN_USER_NAME = 'Local User'


class SmartMatchNotification(BaseModel):
    """A derived, non-persisted mutual-interest notification."""
    id: str
    type: str = SMART_SWAP_MATCH
    title: str
    message: str
    distance_meters: Optional[float] = None
    distance: Optional[str] = None
    matched_item: Dict[str, Any]
    your_item: Dict[str, Any]
    counterpart_id: str
    counterpart_name: str
    status: str = 'UNREAD'


def listing_distance(listing: Mapping[str, Any]) -> Optional[float]:
    """Distance reported by the radius search, if any."""
    value = listing.get('distance_meters', listing.get('distance'))
    if value is None:
        return None
    try:
        distance = float(value)
    except (TypeError, ValueError):
        return None
    return distance if math.isfinite(distance) else None


def format_distance(meters: Optional[float]) -> Optional[str]:
    """Render meters the way the client shows them, e.g. '0.8 km'."""
    if meters is None:
        return None
    return f"{meters / 1000:.1f} km"


def _sort_key(notification: SmartMatchNotification):
    distance = notification.distance_meters
    return (
        math.inf if distance is None else distance,
        str(notification.matched_item.get('id')),
        str(notification.your_item.get('id'))
    )


def build_notification(
    matched: Mapping[str, Any],
    yours: Mapping[str, Any],
    counterpart_name: Optional[str]
) -> SmartMatchNotification:
    """Build the notification for one (matched listing, your listing) pair."""
    name = counterpart_name or UNKNOWN_USER_NAME
    meters = listing_distance(matched)
    distance = format_distance(meters)
    where = f" ({distance} away)" if distance else ""
    return SmartMatchNotification(
        id=f"{matched['id']}:{yours['id']}",
        title='Smart Swap Match Found!',
        message=(
            f"{name}{where} is selling '{matched.get('title')}' from your wishlist "
            f"and wants your {yours.get('title')}."
        ),
        distance_meters=meters,
        distance=distance,
        matched_item=dict(matched),
        your_item=dict(yours),
        counterpart_id=str(matched['user_id']),
        counterpart_name=name
    )


def compute_smart_matches(
    viewer_id: str,
    own_listings: Sequence[Mapping[str, Any]],
    wishlist_ids: Iterable[Any],
    nearby_listings: Sequence[Mapping[str, Any]],
    seller_wishlists: Iterable[Mapping[str, Any]],
    usernames: Optional[Mapping[str, Optional[str]]] = None,
    limit: int = DEFAULT_MATCH_LIMIT
) -> List[SmartMatchNotification]:
    """Compute mutual swap matches for a viewer.

    Args:
        viewer_id: The requesting user
        own_listings: The viewer's active listings
        wishlist_ids: Listing ids on the viewer's wishlist
        nearby_listings: Active listings around the viewer, with distance
        seller_wishlists: Wishlist rows (user_id, listing_id) of nearby sellers,
                          in tie-break order
        usernames: Seller id -> display name
        limit: Maximum number of notifications

    Returns:
        Notifications sorted by ascending distance, at most `limit` long
    """
    wanted = {str(listing_id) for listing_id in wishlist_ids}
    if not own_listings or not wanted or not nearby_listings:
        return []

    viewer_id = str(viewer_id)
    usernames = usernames or {}
    own_by_id = {str(listing['id']): listing for listing in own_listings}

    candidates = [
        listing for listing in nearby_listings
        if str(listing.get('user_id')) != viewer_id
        and str(listing.get('id')) in wanted
    ]
    if not candidates:
        return []

    # First wanted listing of the viewer per seller
    reciprocal: Dict[str, str] = {}
    for row in seller_wishlists:
        seller_id = str(row['user_id'])
        listing_id = str(row['listing_id'])
        if seller_id != viewer_id and listing_id in own_by_id and seller_id not in reciprocal:
            reciprocal[seller_id] = listing_id

    seen = set()
    matches = []
    for listing in candidates:
        seller_id = str(listing['user_id'])
        your_id = reciprocal.get(seller_id)
        if your_id is None:
            continue
        key = (str(listing['id']), your_id)
        if key in seen:
            continue
        seen.add(key)
        matches.append(build_notification(listing, own_by_id[your_id], usernames.get(seller_id)))

    matches.sort(key=_sort_key)
    return matches[:limit]
