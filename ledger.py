"""
Points ledger accessor.

All balance mutations go through here. Each is a plain read-then-write with
no transaction, so concurrent requests for the same user can lose updates.
"""

import logging
from typing import Optional, Tuple

from database import SERVER_TIMESTAMP, Store
from schemas import Notification, Number, Transaction, TransactionType, UserStats

logger = logging.getLogger(__name__)


def stats_path(uid: str) -> str:
    return f"users/{uid}/stats"


def get_stats(store: Store, uid: str) -> UserStats:
    raw = store.get(stats_path(uid))
    return UserStats(**(raw if isinstance(raw, dict) else {}))


def update_stats(store: Store, uid: str, **fields) -> None:
    store.update(stats_path(uid), fields)


def set_points(store: Store, uid: str, points: Number, **fields) -> Number:
    update_stats(store, uid, points=points, **fields)
    return points


def add_points(store: Store, uid: str, amount: int) -> Number:
    """Credit (or debit, for a negative amount) a user's balance."""
    current = get_stats(store, uid).points
    return set_points(store, uid, current + amount)


def record_transaction(store: Store, uid: str, type: TransactionType, amount: int, desc: str) -> str:
    tx = Transaction(type=type, amount=amount, desc=desc, timestamp=SERVER_TIMESTAMP)
    return store.push(f"users/{uid}/transactions", tx.model_dump())


def notify(store: Store, uid: str, title: str, message: str) -> str:
    note = Notification(title=title, message=message, timestamp=SERVER_TIMESTAMP)
    return store.push(f"users/{uid}/notifications", note.model_dump())


def find_user_by_referral_code(store: Store, code: str, exclude_uid: str) -> Optional[Tuple[str, UserStats]]:
    """
    First user (in the store's key order) whose referralCode matches.

    Scans every user node, so the cost grows with the user count.
    """
    users = store.get("users") or {}
    # Nodes whose keys are all integers come back as a list.
    if isinstance(users, list):
        users = {str(i): node for i, node in enumerate(users)}
    if not isinstance(users, dict):
        return None
    for uid, node in users.items():
        stats = node.get("stats") if isinstance(node, dict) else None
        if not isinstance(stats, dict) or uid == exclude_uid:
            continue
        if stats.get("referralCode") == code:
            return uid, UserStats(**stats)
    return None
