import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from random import SystemRandom
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import ledger
from auth import require_user
from config import settings
from database import SERVER_TIMESTAMP, Store, StoreError, get_store
from schemas import Microtask, Number, Submission

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SPIN_COST = 5
PRIZES = [0, 2, 5, 10, 20, 0, 50, 5]
DAILY_BONUS = 10
MIN_CAMPAIGN_QTY = 10
REFERRAL_BONUS = 50

# Store keys may not contain any of . / # $ [ ]
KEY_PATTERN = r"^[^./#$\[\]]+$"

_rng = SystemRandom()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Connect before serving so concurrent first requests share one app.
    database.init_store()
    yield


app = FastAPI(title="TaskBazar API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    logger.info("Rejected body for %s: %s", request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid data"}, status_code=400)


@app.exception_handler(StoreError)
async def store_error(request: Request, exc: StoreError):
    return JSONResponse({"error": "Database error"}, status_code=500)


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse({"error": "Database error"}, status_code=500)


def today_midnight_ms() -> int:
    """Local midnight of the server's current day, in epoch milliseconds."""
    midnight = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def new_task_id() -> str:
    return f"t_{int(time.time() * 1000)}"


def load_owned_task(store: Store, task_id: str, uid: str) -> dict:
    raw = store.get(f"public/data/microtasks/{task_id}")
    if not isinstance(raw, dict) or raw.get("creatorId") != uid:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return raw


@app.get("/", response_class=PlainTextResponse)
def root():
    return "TaskBazar Full Secure Backend is Running! 🚀"


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "namespace": None,
        "connection_status": "Not Connected",
    }
    try:
        store = database.get_store()
        response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
        response["namespace"] = store.namespace
        response["connection_status"] = "Connected"
        try:
            store.get("public/data", shallow=True)
            response["database"] = "✅ Connected & Working"
        except StoreError as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    except HTTPException as e:
        response["database"] = f"⚠️ {e.detail}"
    return response


# ---------- Spin wheel ----------
class SpinResponse(BaseModel):
    success: bool = True
    prizeIndex: int
    winAmount: int
    newPoints: Number


@app.post("/api/spin", response_model=SpinResponse)
def spin(uid: str = Depends(require_user), store: Store = Depends(get_store)):
    points = ledger.get_stats(store, uid).points
    if points < SPIN_COST:
        raise HTTPException(status_code=400, detail="Not enough points")

    prize_index = _rng.randrange(len(PRIZES))
    win_amount = PRIZES[prize_index]
    new_points = ledger.set_points(store, uid, points - SPIN_COST + win_amount)
    ledger.record_transaction(store, uid, "spin", win_amount - SPIN_COST, f"Spun the wheel (Won {win_amount})")

    logger.info("User %s spun index %d (won %d), balance %s", uid, prize_index, win_amount, new_points)
    return {"prizeIndex": prize_index, "winAmount": win_amount, "newPoints": new_points}


# ---------- Daily bonus ----------
class DailyBonusResponse(BaseModel):
    success: bool = True
    newPoints: Number
    message: str


@app.post("/api/daily-bonus", response_model=DailyBonusResponse)
def daily_bonus(uid: str = Depends(require_user), store: Store = Depends(get_store)):
    stats = ledger.get_stats(store, uid)
    today = today_midnight_ms()
    if stats.lastBonusDate == today:
        raise HTTPException(status_code=400, detail="Already claimed today!")

    new_points = ledger.set_points(store, uid, stats.points + DAILY_BONUS, lastBonusDate=today)
    ledger.record_transaction(store, uid, "bonus", DAILY_BONUS, "Daily Gift Claimed")

    logger.info("User %s claimed daily bonus, balance %s", uid, new_points)
    return {"newPoints": new_points, "message": f"Claimed {DAILY_BONUS} points!"}


class SuccessResponse(BaseModel):
    success: bool = True


# ---------- Campaigns ----------
class CreateCampaignRequest(BaseModel):
    title: Optional[str] = None
    type: Optional[str] = None
    link: Optional[str] = None
    qty: Optional[int] = None
    totalCost: int = Field(0, ge=0)
    reward: Optional[int] = None


@app.post("/api/create-campaign", response_model=SuccessResponse)
def create_campaign(
    payload: CreateCampaignRequest,
    uid: str = Depends(require_user),
    store: Store = Depends(get_store),
):
    if not payload.title or not payload.link or payload.qty is None or payload.qty < MIN_CAMPAIGN_QTY:
        raise HTTPException(status_code=400, detail="Invalid data")

    points = ledger.get_stats(store, uid).points
    if points < payload.totalCost:
        raise HTTPException(status_code=400, detail="Not enough points")

    # The debit is not recorded as a transaction.
    ledger.set_points(store, uid, points - payload.totalCost)

    task_id = new_task_id()
    task = Microtask(
        title=payload.title,
        type=payload.type,
        link=payload.link,
        qty=payload.qty,
        reward=payload.reward,
        creatorId=uid,
        timestamp=SERVER_TIMESTAMP,
    )
    store.set(f"public/data/microtasks/{task_id}", task.model_dump())

    logger.info("User %s created campaign %s for %d points", uid, task_id, payload.totalCost)
    return {}


class DeleteCampaignRequest(BaseModel):
    taskId: str = Field(..., pattern=KEY_PATTERN)
    refundPoints: int = 0


@app.post("/api/delete-campaign", response_model=SuccessResponse)
def delete_campaign(
    payload: DeleteCampaignRequest,
    uid: str = Depends(require_user),
    store: Store = Depends(get_store),
):
    load_owned_task(store, payload.taskId, uid)
    store.delete(f"public/data/microtasks/{payload.taskId}")

    # refundPoints comes from the caller, not from the stored task.
    if payload.refundPoints > 0:
        ledger.add_points(store, uid, payload.refundPoints)
        ledger.record_transaction(store, uid, "refund", payload.refundPoints, "Campaign Delete Refund")

    logger.info("User %s deleted campaign %s, refunded %d", uid, payload.taskId, max(payload.refundPoints, 0))
    return {}


class ReviewProofRequest(BaseModel):
    taskId: str = Field(..., pattern=KEY_PATTERN)
    subId: str = Field(..., pattern=KEY_PATTERN)
    workerId: str = Field(..., pattern=KEY_PATTERN)
    rewardPoints: int = 0
    newStatus: str


@app.post("/api/review-proof", response_model=SuccessResponse)
def review_proof(
    payload: ReviewProofRequest,
    uid: str = Depends(require_user),
    store: Store = Depends(get_store),
):
    load_owned_task(store, payload.taskId, uid)

    # newStatus is stored as given; only "approved" pays out.
    review = Submission(status=payload.newStatus, reviewedAt=SERVER_TIMESTAMP)
    store.update(f"public/data/submissions/{payload.taskId}/{payload.subId}", review.model_dump())

    approved = payload.newStatus == "approved"
    if approved:
        worker = ledger.get_stats(store, payload.workerId)
        ledger.set_points(
            store,
            payload.workerId,
            worker.points + payload.rewardPoints,
            tasksCompleted=worker.tasksCompleted + 1,
        )
        ledger.record_transaction(store, payload.workerId, "mission", payload.rewardPoints, "Mission Approved")
        ledger.notify(
            store,
            payload.workerId,
            "Mission Approved! ✅",
            f"Your proof was approved, +{payload.rewardPoints} points.",
        )
    else:
        ledger.notify(store, payload.workerId, "Mission Rejected ❌", "The creator rejected your proof.")

    logger.info("User %s marked %s/%s as %s", uid, payload.taskId, payload.subId, payload.newStatus)
    return {}


# ---------- Referral ----------
class ReferralRequest(BaseModel):
    referCode: Optional[str] = None
    newUserName: Optional[str] = None


@app.post("/api/referral", response_model=SuccessResponse)
def referral(
    payload: ReferralRequest,
    uid: str = Depends(require_user),
    store: Store = Depends(get_store),
):
    if not payload.referCode:
        raise HTTPException(status_code=400, detail="No code")

    if ledger.get_stats(store, uid).referredBy:
        raise HTTPException(status_code=400, detail="Already referred")

    found = ledger.find_user_by_referral_code(store, payload.referCode, exclude_uid=uid)
    if found is None:
        raise HTTPException(status_code=400, detail="Invalid code")

    referrer_uid, referrer = found
    name = payload.newUserName
    ledger.set_points(store, referrer_uid, referrer.points + REFERRAL_BONUS)
    ledger.record_transaction(store, referrer_uid, "referral", REFERRAL_BONUS, f"Referral Bonus ({name})")
    ledger.notify(
        store,
        referrer_uid,
        "রেফারেল বোনাস! 🎁",
        f"আপনার রেফার কোড ব্যবহার করে {name} জয়েন করেছে। +{REFERRAL_BONUS} পয়েন্ট!",
    )
    ledger.update_stats(store, uid, referredBy=referrer_uid)

    logger.info("User %s referred by %s", uid, referrer_uid)
    return {}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
