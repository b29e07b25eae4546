"""
Leaderboard ranking and pagination.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple, Union

from bracket.fixtures import DEFAULT_GRAPH, FixtureGraph
from bracket.scoring import score_predictions, tiebreaker_distance
from bracket.tiebreaker import MAX_GOALS, MIN_GOALS, parse_tiebreaker_input

logger = logging.getLogger(__name__)


DEFAULT_ITEMS_PER_PAGE = 25
SHOW_ELLIPSIS_THRESHOLD = 7


class LeaderboardEntry:
    def __init__(self, wallet, points=0, group_points=0, knockout_points=0,
                 rank=None, change=0, total_goals=None):
        self.wallet = wallet
        self.points = points
        self.group_points = group_points
        self.knockout_points = knockout_points
        self.rank = rank
        self.change = change  # positive = moved up
        self.total_goals = total_goals

    def to_dict(self):
        return {
            'rank': self.rank,
            'wallet': self.wallet,
            'wallet_short': truncate_wallet(self.wallet),
            'points': self.points,
            'group_points': self.group_points,
            'knockout_points': self.knockout_points,
            'change': self.change,
            'total_goals': self.total_goals
        }

    def __repr__(self):
        return f"LeaderboardEntry(rank={self.rank}, wallet={self.wallet}, points={self.points})"


def truncate_wallet(wallet: str) -> str:
    """Shorten a wallet address to its first and last four characters."""
    if len(wallet) <= 12:
        return wallet
    return f"{wallet[:4]}...{wallet[-4:]}"


def _sort_key(entry: LeaderboardEntry, actual_goals: Optional[int]):
    distance = tiebreaker_distance(entry.total_goals, actual_goals)
    return (
        -entry.points,
        distance is None,
        distance if distance is not None else 0,
        entry.wallet.lower()
    )


def rank_entries(entries: List[LeaderboardEntry], actual_goals: Optional[int] = None) -> List[LeaderboardEntry]:
    """
    Sort entries and assign ranks.

    Order is points descending, then closeness of the total-goals guess to
    the actual total (a missing guess ranks after any guess), then wallet.
    """
    ranked = sorted(entries, key=lambda entry: _sort_key(entry, actual_goals))
    for index, entry in enumerate(ranked):
        entry.rank = index + 1
    return ranked


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_leaderboard(participants: List[Dict], results: Optional[Dict] = None,
                      graph: FixtureGraph = DEFAULT_GRAPH,
                      min_goals: int = MIN_GOALS, max_goals: int = MAX_GOALS) -> List[LeaderboardEntry]:
    """
    Score and rank participants.

    Each participant is a dict with 'wallet', 'predictions' (BracketState
    serialized form) and optionally 'previous_rank'. Rows that cannot be
    scored are logged and skipped; an invalid total-goals guess counts as
    no guess.
    """
    results = results or {}
    entries = []
    previous_ranks = {}
    for index, participant in enumerate(participants or []):
        if not isinstance(participant, dict):
            logger.warning("Skipping leaderboard entry %d: not a mapping", index)
            continue
        wallet = participant.get('wallet')
        if wallet is None or str(wallet).strip() == '':
            logger.warning("Skipping leaderboard entry %d: no wallet", index)
            continue
        wallet = str(wallet).strip()
        predictions = participant.get('predictions') or {}
        if not isinstance(predictions, dict):
            logger.warning("Skipping leaderboard entry for %s: predictions are not a mapping", wallet)
            continue
        malformed = [key for key in ('groups', 'knockout')
                     if not isinstance(predictions.get(key) or {}, dict)]
        if malformed:
            logger.warning("Skipping leaderboard entry for %s: %s not a mapping", wallet,
                           ' and '.join(malformed))
            continue
        try:
            score = score_predictions(predictions, results, graph)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Skipping leaderboard entry for %s: %s", wallet, e)
            continue
        total_goals, error = parse_tiebreaker_input(predictions.get('total_goals'), min_goals, max_goals)
        if error:
            logger.warning("Ignoring tiebreaker for %s: %s", wallet, error)
        entries.append(LeaderboardEntry(
            wallet=wallet,
            points=score['points'],
            group_points=score['group_points'],
            knockout_points=score['knockout_points'],
            total_goals=total_goals
        ))
        previous_ranks[wallet] = _as_int(participant.get('previous_rank'))

    ranked = rank_entries(entries, _as_int(results.get('total_goals')))
    for entry in ranked:
        previous = previous_ranks.get(entry.wallet)
        entry.change = previous - entry.rank if previous else 0
    return ranked


def find_user_entry(entries: List[LeaderboardEntry], wallet: Optional[str]) -> Optional[LeaderboardEntry]:
    """Entry for wallet (case-insensitive), or None when not connected or not ranked."""
    if not wallet:
        return None
    wallet = wallet.lower()
    for entry in entries:
        if entry.wallet.lower() == wallet:
            return entry
    return None


def get_total_pages(total_entries: int, per_page: int = DEFAULT_ITEMS_PER_PAGE) -> int:
    return math.ceil(total_entries / per_page) if total_entries > 0 else 0


def paginate(entries: List, page: int, per_page: int = DEFAULT_ITEMS_PER_PAGE) -> Tuple[List, int]:
    """Return (entries on page, total pages). Pages are 1-based and clamped to range."""
    total_pages = get_total_pages(len(entries), per_page)
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * per_page
    return entries[start:start + per_page], total_pages


def get_user_page(entries: List[LeaderboardEntry], wallet: Optional[str],
                  per_page: int = DEFAULT_ITEMS_PER_PAGE) -> Optional[int]:
    """The 1-based page holding wallet's entry."""
    entry = find_user_entry(entries, wallet)
    if entry is None:
        return None
    return entries.index(entry) // per_page + 1


def get_page_numbers(current_page: int, total_pages: int) -> List[Union[int, str]]:
    """
    Page links to show. Up to 7 pages are all listed; beyond that the first
    and last page, the neighbours of the current page and 'ellipsis' gaps.
    """
    if total_pages <= SHOW_ELLIPSIS_THRESHOLD:
        return list(range(1, total_pages + 1))

    pages = [1]
    if current_page > 3:
        pages.append('ellipsis')
    start = max(2, current_page - 1)
    end = min(total_pages - 1, current_page + 1)
    pages.extend(range(start, end + 1))
    if current_page < total_pages - 2:
        pages.append('ellipsis')
    pages.append(total_pages)
    return pages
