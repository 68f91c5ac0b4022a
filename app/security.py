import hashlib
import secrets
from datetime import datetime, timedelta
import bcrypt
import jwt
from sqlalchemy.orm import Session
from app import models
from app.config import settings
from app.logger import get_logger

log = get_logger("auth")

ALGORITHM = "HS256"
REVOKED_RETENTION_DAYS = 30


def hash_password(password: str) -> str:
	salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
	return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
	if not password or not hashed:
		return False
	try:
		return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
	except ValueError:
		return False


def _hash_token(token: str) -> str:
	return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(user: models.User) -> str:
	now = datetime.now()
	payload = {
		"iss": settings.jwt_issuer,
		"iat": int(now.timestamp()),
		"exp": int((now + timedelta(seconds=settings.jwt_access_ttl)).timestamp()),
		"type": "access",
		"user_id": user.id,
		"username": user.username,
		"email": user.email,
		"role": user.role,
		"first_name": user.first_name,
		"last_name": user.last_name,
	}
	return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def create_refresh_token(db: Session, user: models.User, user_agent: str | None = None, ip_address: str | None = None) -> str:
	now = datetime.now()
	expires_at = now + timedelta(seconds=settings.jwt_refresh_ttl)
	jti = secrets.token_hex(16)
	payload = {
		"iss": settings.jwt_issuer,
		"iat": int(now.timestamp()),
		"exp": int(expires_at.timestamp()),
		"type": "refresh",
		"user_id": user.id,
		"jti": jti,
	}
	token = jwt.encode(payload, settings.jwt_refresh_secret, algorithm=ALGORITHM)
	db.add(models.RefreshToken(
		user_id=user.id,
		token_hash=_hash_token(token),
		jti=jti,
		expires_at=expires_at,
		user_agent=(user_agent or "")[:255] or None,
		ip_address=ip_address,
	))
	db.commit()
	return token


def generate_token_pair(db: Session, user: models.User, user_agent: str | None = None, ip_address: str | None = None) -> dict:
	return {
		"access_token": create_access_token(user),
		"refresh_token": create_refresh_token(db, user, user_agent, ip_address),
		"token_type": "Bearer",
		"expires_in": settings.jwt_access_ttl,
		"refresh_expires_in": settings.jwt_refresh_ttl,
	}


def _decode(token: str, secret: str, token_type: str) -> dict | None:
	try:
		payload = jwt.decode(token, secret, algorithms=[ALGORITHM], issuer=settings.jwt_issuer)
	except jwt.PyJWTError:
		return None
	if payload.get("type") != token_type:
		return None
	return payload


def verify_access_token(token: str) -> dict | None:
	return _decode(token, settings.jwt_secret, "access")


def decode_refresh_token(token: str) -> dict | None:
	return _decode(token, settings.jwt_refresh_secret, "refresh")


def _usable_row(db: Session, token: str, payload: dict) -> models.RefreshToken | None:
	row = db.query(models.RefreshToken).filter(models.RefreshToken.jti == payload.get("jti")).first()
	if not row or row.revoked_at is not None or row.expires_at <= datetime.now():
		return None
	if not secrets.compare_digest(row.token_hash, _hash_token(token)):
		return None
	return row


def refresh_access_token(db: Session, refresh_token: str, user_agent: str | None = None, ip_address: str | None = None) -> dict | None:
	payload = decode_refresh_token(refresh_token)
	if not payload:
		return None
	row = _usable_row(db, refresh_token, payload)
	if not row:
		return None
	user = db.query(models.User).filter(models.User.id == row.user_id).first()
	if not user or not user.is_active:
		return None
	row.revoked_at = datetime.now()
	db.commit()
	log.info("Rotated refresh token %s for user %s", row.jti, user.id)
	return generate_token_pair(db, user, user_agent, ip_address)


def revoke_refresh_token(db: Session, jti: str) -> int:
	count = db.query(models.RefreshToken).filter(
		models.RefreshToken.jti == jti,
		models.RefreshToken.revoked_at.is_(None),
	).update({models.RefreshToken.revoked_at: datetime.now()}, synchronize_session=False)
	db.commit()
	return count


def revoke_all_user_tokens(db: Session, user_id: int) -> int:
	count = db.query(models.RefreshToken).filter(
		models.RefreshToken.user_id == user_id,
		models.RefreshToken.revoked_at.is_(None),
	).update({models.RefreshToken.revoked_at: datetime.now()}, synchronize_session=False)
	db.commit()
	return count


def cleanup_expired_tokens(db: Session) -> int:
	now = datetime.now()
	expired = db.query(models.RefreshToken).filter(models.RefreshToken.expires_at < now).delete(synchronize_session=False)
	old_revoked = db.query(models.RefreshToken).filter(
		models.RefreshToken.revoked_at.is_not(None),
		models.RefreshToken.revoked_at < now - timedelta(days=REVOKED_RETENTION_DAYS),
	).delete(synchronize_session=False)
	db.commit()
	return expired + old_revoked


def token_stats(db: Session) -> dict:
	now = datetime.now()
	q = db.query(models.RefreshToken)
	return {
		"total_tokens": q.count(),
		"active_tokens": q.filter(models.RefreshToken.revoked_at.is_(None), models.RefreshToken.expires_at > now).count(),
		"expired_tokens": q.filter(models.RefreshToken.expires_at <= now).count(),
		"revoked_tokens": q.filter(models.RefreshToken.revoked_at.is_not(None)).count(),
	}


def active_sessions(db: Session, user_id: int) -> list[models.RefreshToken]:
	return db.query(models.RefreshToken).filter(
		models.RefreshToken.user_id == user_id,
		models.RefreshToken.revoked_at.is_(None),
		models.RefreshToken.expires_at > datetime.now(),
	).order_by(models.RefreshToken.created_at.desc()).all()
