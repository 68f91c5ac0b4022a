from datetime import datetime
from fastapi import APIRouter, Depends, Request
from sqlalchemy import func as sa_func, or_
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app import security
from app.middleware import LOGIN_RULES, admin_endpoint, auth_endpoint, current_user, validate
from app.responses import ApiError, success
from app.schemas import RefreshIn, SessionOut, UserOut
from app.logger import get_logger

router = APIRouter(prefix="/auth", tags=["auth"])
log = get_logger("auth")


def _client(request: Request) -> tuple[str | None, str | None]:
	return request.headers.get("user-agent"), request.client.host if request.client else None


@router.post("/login")
def login(request: Request, payload: dict = Depends(validate(LOGIN_RULES)), db: Session = Depends(get_db)):
	login_value = str(payload["email"]).strip().lower()
	user = db.query(models.User).filter(or_(
		sa_func.lower(models.User.email) == login_value,
		sa_func.lower(models.User.username) == login_value,
	)).first()
	if not user or not security.verify_password(str(payload["password"]), user.password_hash):
		log.info("Failed login for %s", login_value)
		raise ApiError(401, "Invalid credentials")
	if not user.is_active:
		raise ApiError(401, "Account is deactivated")
	user.last_login_at = datetime.now()
	db.commit()
	user_agent, ip = _client(request)
	tokens = security.generate_token_pair(db, user, user_agent, ip)
	log.info("User %s logged in", user.id)
	return success({"user": UserOut.model_validate(user).model_dump(), **tokens}, "Login successful")


@router.post("/refresh")
def refresh(request: Request, payload: RefreshIn, db: Session = Depends(get_db)):
	user_agent, ip = _client(request)
	tokens = security.refresh_access_token(db, payload.refresh_token, user_agent, ip)
	if not tokens:
		raise ApiError(401, "Invalid or expired refresh token")
	return success(tokens, "Token refreshed successfully")


@router.post("/logout", dependencies=auth_endpoint())
def logout(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	revoked = security.revoke_all_user_tokens(db, user.id)
	log.info("User %s logged out, %d tokens revoked", user.id, revoked)
	return success({"revoked_tokens": revoked}, "Logged out successfully")


@router.post("/logout-single")
def logout_single(payload: RefreshIn, db: Session = Depends(get_db)):
	claims = security.decode_refresh_token(payload.refresh_token)
	if not claims:
		raise ApiError(401, "Invalid or expired refresh token")
	revoked = security.revoke_refresh_token(db, claims["jti"])
	return success({"revoked_tokens": revoked}, "Session logged out")


@router.get("/me", dependencies=auth_endpoint())
def me(user: models.User = Depends(current_user)):
	return success(UserOut.model_validate(user).model_dump())


@router.get("/sessions", dependencies=auth_endpoint())
def sessions(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	rows = security.active_sessions(db, user.id)
	return success({"sessions": [SessionOut.model_validate(r).model_dump() for r in rows], "total": len(rows)})


@router.delete("/sessions/{jti}", dependencies=auth_endpoint())
def revoke_session(jti: str, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	owned = db.query(models.RefreshToken).filter(
		models.RefreshToken.jti == jti,
		models.RefreshToken.user_id == user.id,
	).first()
	if not owned:
		raise ApiError(404, "Session not found")
	security.revoke_refresh_token(db, jti)
	return success(message="Session revoked")


@router.get("/token-stats", dependencies=admin_endpoint())
def token_stats(db: Session = Depends(get_db)):
	return success(security.token_stats(db))


@router.post("/cleanup-tokens", dependencies=admin_endpoint())
def cleanup_tokens(db: Session = Depends(get_db)):
	deleted = security.cleanup_expired_tokens(db)
	log.info("Token cleanup removed %d rows", deleted)
	return success({"deleted_tokens": deleted}, "Token cleanup completed")
