"""
Record schemas for TaskBazar

Each Pydantic model maps to a node in the Realtime Database, relative to
artifacts/{APP_ID}. Use these to read stored data with defaults filled in and
to shape records before they are written. Nothing enforces a schema on the
database itself, so the read side accepts whatever older clients left there.
"""

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

TransactionType = Literal["spin", "bonus", "mission", "referral", "refund"]
Number = Union[int, float]


def as_number(value: Any) -> Number:
    """Stored counters read as 0 when they are missing or not numeric."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            return 0
    return 0


class UserStats(BaseModel):
    """
    Node: "users/{uid}/stats"
    Per-user balance and bookkeeping. Unknown keys written by clients are kept.
    """
    model_config = ConfigDict(extra="allow")

    points: Number = Field(0, description="Spendable points balance")
    lastBonusDate: Any = Field(None, description="Local midnight (epoch ms) of the last daily bonus")
    referralCode: Any = None
    referredBy: Any = Field(None, description="Referrer uid, set at most once")
    tasksCompleted: Number = 0

    @field_validator("points", "tasksCompleted", mode="before")
    @classmethod
    def _counter(cls, value):
        return as_number(value)


class Transaction(BaseModel):
    """
    Node: "users/{uid}/transactions/{push-id}"
    Append-only points history.
    """
    type: TransactionType
    amount: int
    desc: str
    timestamp: Any = None


class Notification(BaseModel):
    """
    Node: "users/{uid}/notifications/{push-id}"
    """
    title: str
    message: str
    timestamp: Any = None


class Microtask(BaseModel):
    """
    Node: "public/data/microtasks/{taskId}"
    A campaign funded by its creator.
    """
    model_config = ConfigDict(extra="allow")

    title: Any = None
    type: Any = None
    link: Any = None
    qty: Any = None
    reward: Any = Field(None, description="Points per approved submission")
    creatorId: Any = None
    timestamp: Any = None


class Submission(BaseModel):
    """
    Node: "public/data/submissions/{taskId}/{subId}"
    """
    model_config = ConfigDict(extra="allow")

    status: str = "pending"
    reviewedAt: Any = None
