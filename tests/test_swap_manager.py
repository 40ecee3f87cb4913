"""Tests for SwapManager smart match loading and swap transactions."""

import uuid
from contextlib import asynccontextmanager

import pytest

import swaps
from listings import InvalidCoordinatesError
from swaps import (
    SwapManager, InvalidSwapRequestError, SwapNotFoundError, SwapForbiddenError, SwapStateError
)

VIEWER = str(uuid.uuid4())
SELLER = str(uuid.uuid4())
MINE = str(uuid.uuid4())
THEIRS = str(uuid.uuid4())

class FakeListingManager:
    def __init__(self, pool=None):
        pass

    async def get_user_listings(self, user_id, active_only=False):
        assert active_only
        return [{"id": MINE, "user_id": VIEWER, "title": "Bicycle", "status": "active"}]

    async def get_nearby_listings(self, lat, lon, radius_meters=None):
        return [
            {"id": MINE, "user_id": VIEWER, "title": "Bicycle", "distance_meters": 0.0},
            {"id": THEIRS, "user_id": SELLER, "title": "Guitar", "distance_meters": 800.0}
        ]

class FakeWishlistManager:
    def __init__(self, pool=None):
        pass

    async def get_wishlist_ids(self, user_id):
        return [THEIRS]

class FakeConnection:
    def __init__(self):
        self.queries = []

    async def fetch(self, query, *args):
        self.queries.append((query, args))
        if 'FROM wishlists' in query:
            return [{"user_id": SELLER, "listing_id": MINE}]
        if 'FROM users' in query:
            return [{"id": SELLER, "username": "Bea"}]
        raise AssertionError(f"Unexpected query: {query}")

class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

@pytest.fixture
def manager(monkeypatch):
    monkeypatch.setattr(swaps, "ListingManager", FakeListingManager)
    monkeypatch.setattr(swaps, "WishlistManager", FakeWishlistManager)
    conn = FakeConnection()
    manager = SwapManager(FakePool(conn))
    manager.conn = conn
    return manager

@pytest.mark.asyncio
async def test_smart_matches_loaded_and_computed(manager):
    """Test the mutual match between the viewer and a nearby seller."""
    matches = await manager.get_smart_matches(VIEWER, "12.97", "77.59")

    assert len(matches) == 1
    assert matches[0].matched_item["id"] == THEIRS
    assert matches[0].your_item["id"] == MINE
    assert matches[0].counterpart_name == "Bea"
    assert matches[0].distance == "0.8 km"

    wishlist_query = manager.conn.queries[0]
    assert wishlist_query[1] == ([SELLER], [MINE])

@pytest.mark.asyncio
async def test_smart_matches_validation(manager):
    """Test the query parameter checks."""
    with pytest.raises(InvalidSwapRequestError):
        await manager.get_smart_matches(None, "1", "2")
    with pytest.raises(InvalidSwapRequestError):
        await manager.get_smart_matches("not-a-uuid", "1", "2")
    with pytest.raises(InvalidCoordinatesError):
        await manager.get_smart_matches(VIEWER, "north", "2")

PROPOSER = str(uuid.uuid4())
RECIPIENT = str(uuid.uuid4())
OFFERED = str(uuid.uuid4())
DESIRED = str(uuid.uuid4())
ELSEWHERE = str(uuid.uuid4())

class SwapConnection:
    """In-memory listings and matches for SwapManager's propose and respond queries."""

    def __init__(self):
        self.listings = {
            OFFERED: {"id": OFFERED, "user_id": PROPOSER, "status": "active"},
            DESIRED: {"id": DESIRED, "user_id": RECIPIENT, "status": "active"},
            ELSEWHERE: {"id": ELSEWHERE, "user_id": SELLER, "status": "active"}
        }
        self.matches = {}
        self.stale = False

    @asynccontextmanager
    async def transaction(self):
        yield

    def add_match(self, user_1, user_2, listing_1, listing_2, status="pending"):
        match_id = str(uuid.uuid4())
        self.matches[match_id] = {
            "id": match_id,
            "user_1_id": user_1,
            "user_2_id": user_2,
            "listing_1_id": listing_1,
            "listing_2_id": listing_2,
            "status": status
        }
        return match_id

    async def fetch(self, query, *args):
        if 'UPDATE matches' in query:
            match_id, pending, rejected, listing_ids = args
            superseded = []
            for match in self.matches.values():
                if match["id"] != match_id and match["status"] == pending and (
                    match["listing_1_id"] in listing_ids or match["listing_2_id"] in listing_ids
                ):
                    match["status"] = rejected
                    superseded.append({"id": match["id"]})
            return superseded
        if 'FROM listings' in query:
            return [dict(self.listings[i]) for i in sorted(args[0]) if i in self.listings]
        raise AssertionError(f"Unexpected query: {query}")

    async def fetchval(self, query, *args):
        if 'SELECT id FROM matches' in query:
            for match in self.matches.values():
                if (match["user_1_id"], match["listing_1_id"], match["listing_2_id"], match["status"]) == args:
                    return match["id"]
            return None
        raise AssertionError(f"Unexpected query: {query}")

    async def fetchrow(self, query, *args):
        if 'INSERT INTO matches' in query:
            match_id = self.add_match(*args)
            return dict(self.matches[match_id])
        if 'SELECT * FROM matches' in query:
            match = self.matches.get(args[0])
            return dict(match) if match else None
        if 'UPDATE matches' in query:
            match = self.matches.get(args[0])
            # A concurrent response landed between the lock and the update
            if self.stale or match is None or match["status"] != args[2]:
                return None
            match["status"] = args[1]
            return dict(match)
        raise AssertionError(f"Unexpected query: {query}")

    async def execute(self, query, *args):
        if 'UPDATE listings' in query:
            for listing_id in args[0]:
                self.listings[listing_id]["status"] = args[1]
            return f'UPDATE {len(args[0])}'
        raise AssertionError(f"Unexpected query: {query}")

@pytest.fixture
def swap_conn():
    return SwapConnection()

@pytest.fixture
def swap_manager(swap_conn):
    return SwapManager(FakePool(swap_conn))

@pytest.mark.asyncio
async def test_propose_creates_pending_match(swap_manager, swap_conn):
    """Test a proposal addressed to the desired listing's owner."""
    match = await swap_manager.propose(PROPOSER, DESIRED, OFFERED)

    assert match["status"] == "pending"
    assert match["user_1_id"] == PROPOSER
    assert match["user_2_id"] == RECIPIENT
    assert match["listing_1_id"] == OFFERED
    assert match["listing_2_id"] == DESIRED
    assert len(swap_conn.matches) == 1

@pytest.mark.asyncio
async def test_propose_rejects_duplicate_pending(swap_manager, swap_conn):
    """Test the same pending proposal can't be made twice."""
    await swap_manager.propose(PROPOSER, DESIRED, OFFERED)

    with pytest.raises(InvalidSwapRequestError):
        await swap_manager.propose(PROPOSER, DESIRED, OFFERED)
    assert len(swap_conn.matches) == 1

@pytest.mark.asyncio
async def test_propose_errors(swap_manager, swap_conn):
    """Test proposals against missing, foreign and closed listings."""
    with pytest.raises(InvalidSwapRequestError):
        await swap_manager.propose(PROPOSER, None, OFFERED)
    with pytest.raises(SwapNotFoundError):
        await swap_manager.propose(PROPOSER, str(uuid.uuid4()), OFFERED)
    with pytest.raises(SwapForbiddenError):
        await swap_manager.propose(PROPOSER, DESIRED, ELSEWHERE)

    swap_conn.listings[DESIRED]["status"] = "sold"
    with pytest.raises(SwapStateError):
        await swap_manager.propose(PROPOSER, DESIRED, OFFERED)
    assert swap_conn.matches == {}

@pytest.mark.asyncio
async def test_accept_swaps_both_listings(swap_manager, swap_conn):
    """Test accepting marks both listings swapped and rejects competing proposals."""
    match_id = swap_conn.add_match(PROPOSER, RECIPIENT, OFFERED, DESIRED)
    competing = swap_conn.add_match(SELLER, RECIPIENT, ELSEWHERE, DESIRED)
    unrelated = swap_conn.add_match(RECIPIENT, SELLER, str(uuid.uuid4()), ELSEWHERE)

    match = await swap_manager.respond(match_id, RECIPIENT, "Accept")

    assert match["status"] == "accepted"
    assert swap_conn.listings[OFFERED]["status"] == "swapped"
    assert swap_conn.listings[DESIRED]["status"] == "swapped"
    assert swap_conn.listings[ELSEWHERE]["status"] == "active"
    assert swap_conn.matches[competing]["status"] == "rejected"
    assert swap_conn.matches[unrelated]["status"] == "pending"

@pytest.mark.asyncio
async def test_reject_leaves_listings_active(swap_manager, swap_conn):
    """Test rejecting only changes the match."""
    match_id = swap_conn.add_match(PROPOSER, RECIPIENT, OFFERED, DESIRED)
    other = swap_conn.add_match(SELLER, RECIPIENT, ELSEWHERE, DESIRED)

    match = await swap_manager.respond(match_id, RECIPIENT, "reject")

    assert match["status"] == "rejected"
    assert swap_conn.listings[OFFERED]["status"] == "active"
    assert swap_conn.listings[DESIRED]["status"] == "active"
    assert swap_conn.matches[other]["status"] == "pending"

@pytest.mark.asyncio
async def test_respond_to_answered_swap(swap_manager, swap_conn):
    """Test a match can only be answered while pending."""
    match_id = swap_conn.add_match(PROPOSER, RECIPIENT, OFFERED, DESIRED)
    await swap_manager.respond(match_id, RECIPIENT, "reject")

    with pytest.raises(SwapStateError):
        await swap_manager.respond(match_id, RECIPIENT, "accept")
    assert swap_conn.listings[DESIRED]["status"] == "active"

@pytest.mark.asyncio
async def test_respond_loses_race(swap_manager, swap_conn):
    """Test the conditional update refuses a match answered concurrently."""
    match_id = swap_conn.add_match(PROPOSER, RECIPIENT, OFFERED, DESIRED)
    swap_conn.stale = True

    with pytest.raises(SwapStateError):
        await swap_manager.respond(match_id, RECIPIENT, "accept")
    assert swap_conn.listings[OFFERED]["status"] == "active"
    assert swap_conn.listings[DESIRED]["status"] == "active"

@pytest.mark.asyncio
async def test_respond_errors(swap_manager, swap_conn):
    """Test the error cases of a swap response."""
    match_id = swap_conn.add_match(PROPOSER, RECIPIENT, OFFERED, DESIRED)

    with pytest.raises(InvalidSwapRequestError):
        await swap_manager.respond(match_id, RECIPIENT, "maybe")
    with pytest.raises(SwapNotFoundError):
        await swap_manager.respond(str(uuid.uuid4()), RECIPIENT, "accept")
    with pytest.raises(SwapForbiddenError):
        await swap_manager.respond(match_id, PROPOSER, "accept")

    swap_conn.listings[OFFERED]["status"] = "sold"
    with pytest.raises(SwapStateError):
        await swap_manager.respond(match_id, RECIPIENT, "accept")
    assert swap_conn.matches[match_id]["status"] == "pending"
