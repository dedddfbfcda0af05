import logging
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AuthError, AuthService
from config import get_settings
from database import SessionLocal, session_scope
from mailer import Mailer
from models import SavingsEntry, SavingsGoal, User, Wallet
from schemas import (
    ChangePasswordIn,
    EmailIn,
    GoogleAuthIn,
    LoginIn,
    ResetCodeIn,
    ResetPasswordIn,
    ResetTokenIn,
    SavingsEntryIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
    SignupIn,
)
from seed import seed_wallets
from services import (
    GoalNotFound,
    SavingsGoalService,
    SummaryService,
    SupportService,
    WalletNotFound,
    WalletService,
    cents_to_amount,
)
from tokens import read_session_token


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Savings Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiError(HTTPException):
    def __init__(
        self, status_code: int, detail: str, extra: Optional[dict] = None
    ) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.extra = extra or {}


def _auth_error(exc: AuthError) -> ApiError:
    return ApiError(exc.status_code, str(exc), exc.extra)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    content: dict[str, object] = {"success": False, "error": str(exc.detail)}
    content.update(getattr(exc, "extra", {}))
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logging.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_mailer() -> Mailer:
    return Mailer()


def get_profile_fetcher() -> Optional[Callable[[str], dict]]:
    return None


def get_auth_service(
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    profile_fetcher: Optional[Callable[[str], dict]] = Depends(get_profile_fetcher),
) -> AuthService:
    return AuthService(db, mailer=mailer, profile_fetcher=profile_fetcher)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer ") :].strip()
    return token or None


def optional_user_id(request: Request) -> Optional[int]:
    token = _bearer_token(request)
    if not token:
        return None
    payload = read_session_token(token)
    if not payload:
        return None
    return payload["userId"]


def current_user_id(user_id: Optional[int] = Depends(optional_user_id)) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@app.on_event("startup")
def startup_event():
    if settings.seed_wallets:
        with session_scope() as session:
            seed_wallets(session)


def wallet_payload(wallet: Wallet) -> dict[str, object]:
    return {
        "id": wallet.id,
        "slug": wallet.slug,
        "logo": wallet.logo,
        "type": wallet.type.value,
        "isActive": wallet.is_active,
        "createdAt": wallet.created_at.isoformat(),
    }


def entry_payload(entry: SavingsEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "savingsGoalId": entry.savings_goal_id,
        "amount": cents_to_amount(entry.amount_cents),
        "note": entry.note,
        "createdAt": entry.created_at.isoformat(),
    }


def goal_payload(
    goal: SavingsGoal, entries: Optional[list[SavingsEntry]] = None
) -> dict[str, object]:
    data: dict[str, object] = {
        "id": goal.id,
        "userId": goal.user_id,
        "walletId": goal.wallet_id,
        "name": goal.name,
        "currentAmount": cents_to_amount(goal.current_amount_cents),
        "targetAmount": cents_to_amount(goal.target_amount_cents),
        "isCompleted": goal.is_completed,
        "createdAt": goal.created_at.isoformat(),
        "updatedAt": goal.updated_at.isoformat(),
        "wallet": wallet_payload(goal.wallet),
    }
    if entries is not None:
        data["entries"] = [entry_payload(entry) for entry in entries]
    return data


def user_payload(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "provider": user.provider.value if user.provider else None,
    }


@app.get("/health")
def health():
    return {"success": True}


# --- auth ---


@app.post("/auth/signup")
def signup(data: SignupIn, service: AuthService = Depends(get_auth_service)):
    try:
        user = service.signup(data)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {
        "success": True,
        "message": "Account created. Please check your email to verify your account.",
        "requiresVerification": True,
        "email": user.email,
    }


@app.post("/auth/login")
def login(data: LoginIn, service: AuthService = Depends(get_auth_service)):
    try:
        result = service.login(data)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "user": user_payload(result.user), "token": result.token}


@app.post("/auth/google")
def google_login(data: GoogleAuthIn, service: AuthService = Depends(get_auth_service)):
    try:
        result = service.google(data.credential)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "user": user_payload(result.user), "token": result.token}


@app.get("/auth/verify-email")
def verify_email(
    token: Optional[str] = None, service: AuthService = Depends(get_auth_service)
):
    try:
        service.verify_email(token or "")
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": "Email verified successfully. You can now log in."}


@app.post("/auth/resend-verification")
def resend_verification(
    data: EmailIn, service: AuthService = Depends(get_auth_service)
):
    try:
        service.resend_verification(str(data.email))
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {
        "success": True,
        "message": "If the email exists, a verification link has been sent.",
    }


@app.get("/auth/me")
def me(
    user_id: int = Depends(current_user_id),
    service: AuthService = Depends(get_auth_service),
):
    try:
        user = service.me(user_id)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    data = user_payload(user)
    data["createdAt"] = user.created_at.isoformat()
    return {"success": True, "user": data}


@app.post("/auth/forgot-password")
def forgot_password(data: EmailIn, service: AuthService = Depends(get_auth_service)):
    try:
        result = service.forgot_password(str(data.email))
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": result.message, "token": result.token}


@app.post("/auth/resend-reset-code")
def resend_reset_code(
    data: ResetTokenIn, service: AuthService = Depends(get_auth_service)
):
    try:
        service.resend_reset_code(data.token)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": "A new code has been sent to your email."}


@app.post("/auth/verify-reset-code")
def verify_reset_code(
    data: ResetCodeIn, service: AuthService = Depends(get_auth_service)
):
    try:
        service.verify_reset_code(data)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": "Code verified successfully"}


@app.post("/auth/reset-password")
def reset_password(
    data: ResetPasswordIn, service: AuthService = Depends(get_auth_service)
):
    try:
        service.reset_password(data)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": "Password reset successfully"}


@app.post("/auth/change-password")
def change_password(
    data: ChangePasswordIn,
    user_id: int = Depends(current_user_id),
    service: AuthService = Depends(get_auth_service),
):
    try:
        service.change_password(user_id, data)
    except AuthError as exc:
        raise _auth_error(exc) from exc
    return {"success": True, "message": "Password changed successfully"}


# --- savings ---


@app.get("/savings/wallets")
def list_wallets(db: Session = Depends(get_db)):
    wallets = WalletService(db).list_active()
    return {"success": True, "data": [wallet_payload(w) for w in wallets]}


@app.get("/savings/goals")
def list_goals(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    overviews = SavingsGoalService(db, user_id).list_all()
    return {
        "success": True,
        "data": [goal_payload(item.goal, item.recent_entries) for item in overviews],
    }


@app.post("/savings/goals")
def create_goal(
    data: SavingsGoalIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingsGoalService(db, user_id).create(data)
    except WalletNotFound as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "data": goal_payload(goal)}


@app.get("/savings/goals/{goal_id}")
def get_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = SavingsGoalService(db, user_id)
    try:
        goal = service.get(goal_id)
        entries = service.entries(goal_id)
    except GoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "data": goal_payload(goal, entries)}


@app.patch("/savings/goals/{goal_id}")
def update_goal(
    goal_id: int,
    data: SavingsGoalUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingsGoalService(db, user_id).update(goal_id, data)
    except GoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "data": goal_payload(goal)}


@app.delete("/savings/goals/{goal_id}")
def delete_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        SavingsGoalService(db, user_id).delete(goal_id)
    except GoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "message": "Goal deleted"}


@app.post("/savings/goals/{goal_id}/entries")
def add_entry(
    goal_id: int,
    data: SavingsEntryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        entry = SavingsGoalService(db, user_id).add_entry(goal_id, data)
    except GoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "data": entry_payload(entry)}


@app.get("/savings/transactions")
def list_transactions(
    limit: int = 20,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    entries = SavingsGoalService(db, user_id).transactions(limit=limit)
    items = []
    for entry in entries:
        item = entry_payload(entry)
        item["savingsGoal"] = {
            "id": entry.savings_goal.id,
            "name": entry.savings_goal.name,
            "wallet": wallet_payload(entry.savings_goal.wallet),
        }
        items.append(item)
    return {"success": True, "data": items}


@app.get("/savings/summary")
def summary(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    stats = SummaryService(db, user_id).summary()
    return {
        "success": True,
        "data": {
            "totalSaved": cents_to_amount(stats["total_saved_cents"]),
            "totalTarget": cents_to_amount(stats["total_target_cents"]),
            "activeGoals": stats["active_goals"],
            "completedGoals": stats["completed_goals"],
            "goalsCount": stats["goals_count"],
        },
    }


# --- support ---


@app.get("/support")
def support_status(
    user_id: Optional[int] = Depends(optional_user_id),
    db: Session = Depends(get_db),
):
    service = SupportService(db)
    has_hearted = service.has_hearted(user_id) if user_id is not None else False
    return {"success": True, "count": service.count(), "hasHearted": has_hearted}


@app.post("/support")
def toggle_support(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    service = SupportService(db)
    has_hearted = service.toggle(user_id)
    return {"success": True, "count": service.count(), "hasHearted": has_hearted}
