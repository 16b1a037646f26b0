from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Header, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from skinbet.config import settings
from skinbet.core.crash_rounds import CrashRoundService
from skinbet.core.logger import get_logger
from skinbet.core.models import utcnow
from skinbet.core.settlement import BetSettlementService

logger = get_logger("api")

limiter = Limiter(key_func=get_remote_address)

router = APIRouter()

# ==================== Request Models ====================

class CreateUserRequest(BaseModel):
    username: Optional[str] = None
    is_guest: bool = True

class BalanceRequest(BaseModel):
    balance: Decimal

class BetRequest(BaseModel):
    user_id: str
    bet_amount: Decimal
    choice: Optional[str] = None
    cash_out_at: Optional[Decimal] = None
    bet_type: Optional[str] = None
    stand_on: Optional[int] = None
    client_seed: Optional[str] = None
    seed_id: Optional[str] = None

class SeedCommitRequest(BaseModel):
    user_id: str

class CrashStartRequest(BaseModel):
    user_id: str
    bet_amount: Decimal
    client_seed: Optional[str] = None
    seed_id: Optional[str] = None

class CrashCashoutRequest(BaseModel):
    user_id: str


# ==================== Helpers ====================

def get_settlement(request: Request) -> BetSettlementService:
    return request.app.state.settlement

def get_crash_rounds(request: Request) -> CrashRoundService:
    return request.app.state.crash_rounds

def get_rate_limit():
    """Get rate limit string from config."""
    return settings.rate_limit.game_requests if settings.rate_limit.enabled else "1000/second"


# ==================== Users ====================

@router.post("/users")
def create_user(request: Request, data: CreateUserRequest):
    user = get_settlement(request).create_user(username=data.username, is_guest=data.is_guest)
    return {"success": True, "user": user.to_dict()}

@router.get("/users/{user_id}")
def get_user(request: Request, user_id: str):
    user = get_settlement(request).get_user(user_id)
    return {"success": True, "user": user.to_dict()}

@router.patch("/users/{user_id}/balance")
def update_balance(request: Request, user_id: str, data: BalanceRequest):
    user = get_settlement(request).set_balance(user_id, data.balance)
    return {"success": True, "user": user.to_dict()}

@router.get("/users/{user_id}/games")
def get_user_games(request: Request, user_id: str, limit: int = 50):
    records = get_settlement(request).history(user_id, limit)
    return {"success": True, "games": [r.to_dict() for r in records]}


# ==================== Bets ====================

@router.post("/bets/{game_type}")
@limiter.limit(get_rate_limit)
def place_bet(
    request: Request,
    game_type: str,
    data: BetRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    params = data.model_dump(
        include={"choice", "cash_out_at", "bet_type", "stand_on"}, exclude_none=True
    )
    receipt = get_settlement(request).settle(
        data.user_id,
        game_type,
        data.bet_amount,
        params,
        client_seed=data.client_seed,
        seed_id=data.seed_id,
        idempotency_key=idempotency_key,
    )
    return receipt.to_dict()

@router.get("/games/recent")
def get_recent_games(request: Request, limit: int = 20):
    records = get_settlement(request).recent(limit)
    return {"success": True, "games": [r.to_dict() for r in records]}

@router.get("/games/{game_id}/verify")
def verify_game(request: Request, game_id: str):
    return {"success": True, **get_settlement(request).verify(game_id)}

@router.get("/leaderboard")
def get_leaderboard(request: Request):
    """Top 10 players by total won."""
    return {"success": True, "leaderboard": get_settlement(request).leaderboard(limit=10)}

@router.get("/stats")
def get_stats(request: Request):
    return {"success": True, **get_settlement(request).stats()}

@router.get("/health")
def health():
    return {"status": "ok", "timestamp": utcnow().isoformat()}


# ==================== Provably Fair ====================

@router.post("/fairness/commit")
def commit_seed(request: Request, data: SeedCommitRequest):
    """Get a server seed hash to use for the next bet."""
    commitment = get_settlement(request).commit_seed(data.user_id)
    return {"success": True, **commitment.to_dict()}


# ==================== Live Crash ====================

@router.post("/crash/rounds")
@limiter.limit(get_rate_limit)
def start_crash_round(request: Request, data: CrashStartRequest):
    round_view = get_crash_rounds(request).start(
        data.user_id, data.bet_amount, client_seed=data.client_seed, seed_id=data.seed_id
    )
    return {"success": True, "round": round_view}

@router.post("/crash/rounds/{round_id}/cashout")
def cash_out_crash_round(request: Request, round_id: str, data: CrashCashoutRequest):
    round_view = get_crash_rounds(request).cash_out(data.user_id, round_id)
    return {"success": True, "round": round_view}

@router.get("/crash/rounds/{round_id}")
def get_crash_round(request: Request, round_id: str, user_id: str):
    return {"success": True, "round": get_crash_rounds(request).get(user_id, round_id)}
