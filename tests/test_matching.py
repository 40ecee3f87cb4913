"""Tests for smart swap matching."""

import pytest

from swaps import compute_smart_matches, format_distance, SMART_SWAP_MATCH

VIEWER = "user-a"
SELLER = "user-b"

def listing(listing_id, user_id, title=None, distance=None):
    row = {"id": listing_id, "user_id": user_id, "title": title or listing_id, "status": "active"}
    if distance is not None:
        row["distance_meters"] = distance
    return row

def test_mutual_wishlists_produce_one_match():
    """Test the basic two-user scenario."""
    own = [listing("l1", VIEWER, "Bicycle")]
    nearby = [listing("l2", SELLER, "Guitar", distance=800)]

    matches = compute_smart_matches(
        VIEWER,
        own_listings=own,
        wishlist_ids=["l2"],
        nearby_listings=nearby,
        seller_wishlists=[{"user_id": SELLER, "listing_id": "l1"}],
        usernames={SELLER: "Bea"}
    )

    assert len(matches) == 1
    match = matches[0]
    assert match.type == SMART_SWAP_MATCH
    assert match.id == "l2:l1"
    assert match.matched_item["id"] == "l2"
    assert match.your_item["id"] == "l1"
    assert match.counterpart_id == SELLER
    assert match.counterpart_name == "Bea"
    assert match.distance == "0.8 km"
    assert match.status == "UNREAD"
    assert "Guitar" in match.message and "Bicycle" in match.message

def test_no_match_without_reciprocal_interest():
    """Test that one-sided interest yields nothing."""
    matches = compute_smart_matches(
        VIEWER,
        own_listings=[listing("l1", VIEWER)],
        wishlist_ids=["l2"],
        nearby_listings=[listing("l2", SELLER, distance=100)],
        seller_wishlists=[]
    )

    assert matches == []

def test_empty_inputs_short_circuit():
    """Test that missing own listings, wishlist or nearby rows yield nothing."""
    nearby = [listing("l2", SELLER, distance=100)]
    wants = [{"user_id": SELLER, "listing_id": "l1"}]

    assert compute_smart_matches(VIEWER, [], ["l2"], nearby, wants) == []
    assert compute_smart_matches(VIEWER, [listing("l1", VIEWER)], [], nearby, wants) == []
    assert compute_smart_matches(VIEWER, [listing("l1", VIEWER)], ["l2"], [], wants) == []

def test_own_listings_never_matched():
    """Test that the viewer's own nearby listing is excluded even if wishlisted."""
    own = [listing("l1", VIEWER)]
    nearby = [listing("l1", VIEWER, distance=0), listing("l2", SELLER, distance=50)]

    matches = compute_smart_matches(
        VIEWER,
        own_listings=own,
        wishlist_ids=["l1", "l2"],
        nearby_listings=nearby,
        seller_wishlists=[
            {"user_id": VIEWER, "listing_id": "l1"},
            {"user_id": SELLER, "listing_id": "l1"}
        ]
    )

    assert [m.matched_item["id"] for m in matches] == ["l2"]
    assert all(m.counterpart_id != VIEWER for m in matches)

def test_first_wishlist_row_breaks_ties():
    """Test that a seller wanting several of the viewer's items is matched with the first one."""
    own = [listing("l1", VIEWER), listing("l3", VIEWER)]

    matches = compute_smart_matches(
        VIEWER,
        own_listings=own,
        wishlist_ids=["l2"],
        nearby_listings=[listing("l2", SELLER, distance=10)],
        seller_wishlists=[
            {"user_id": SELLER, "listing_id": "l3"},
            {"user_id": SELLER, "listing_id": "l1"}
        ]
    )

    assert len(matches) == 1
    assert matches[0].your_item["id"] == "l3"

def test_sorted_by_distance_with_unknown_last():
    """Test ascending distance order, with rows lacking a distance at the end."""
    sellers = ["s1", "s2", "s3", "s4"]
    nearby = [
        listing("far", "s1", distance=4000),
        listing("unknown", "s2"),
        listing("near", "s3", distance=150),
        listing("mid", "s4", distance=900)
    ]

    matches = compute_smart_matches(
        VIEWER,
        own_listings=[listing("mine", VIEWER)],
        wishlist_ids=["far", "unknown", "near", "mid"],
        nearby_listings=nearby,
        seller_wishlists=[{"user_id": s, "listing_id": "mine"} for s in sellers]
    )

    assert [m.matched_item["id"] for m in matches] == ["near", "mid", "far", "unknown"]
    assert matches[-1].distance is None
    assert matches[0].counterpart_name == "Local User"

def test_limit_and_stability():
    """Test the result cap and that recomputation gives the same order."""
    nearby = [listing(f"item-{i:02d}", f"seller-{i:02d}", distance=100) for i in range(30)]
    kwargs = dict(
        own_listings=[listing("mine", VIEWER)],
        wishlist_ids=[row["id"] for row in nearby],
        nearby_listings=nearby,
        seller_wishlists=[{"user_id": row["user_id"], "listing_id": "mine"} for row in nearby]
    )

    first = compute_smart_matches(VIEWER, **kwargs)
    second = compute_smart_matches(VIEWER, **kwargs)

    assert len(first) == 20
    assert [m.id for m in first] == [m.id for m in second]
    # Equal distances fall back to matched listing id
    assert [m.matched_item["id"] for m in first] == [f"item-{i:02d}" for i in range(20)]

def test_duplicate_nearby_rows_deduplicated():
    """Test that a listing appearing twice produces one notification."""
    row = listing("l2", SELLER, distance=300)

    matches = compute_smart_matches(
        VIEWER,
        own_listings=[listing("l1", VIEWER)],
        wishlist_ids=["l2"],
        nearby_listings=[row, dict(row)],
        seller_wishlists=[{"user_id": SELLER, "listing_id": "l1"}]
    )

    assert len(matches) == 1

@pytest.mark.parametrize("meters,expected", [(800, "0.8 km"), (0, "0.0 km"), (4999, "5.0 km"), (None, None)])
def test_format_distance(meters, expected):
    """Test the kilometre rendering."""
    assert format_distance(meters) == expected
