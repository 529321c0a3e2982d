import base64
import json
import logging
import time

import httpx
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer()

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
# Allowed clock skew for the iat claim, in seconds
CLOCK_SKEW_SECONDS = 60

# Cache for Google's public keys
_cached_keys = None


def _b64decode(segment: str) -> bytes:
    """Decode one base64url JWT segment, restoring the stripped padding"""
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


async def get_google_public_keys(force_refresh: bool = False):
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys and not force_refresh:
        logger.debug("✅ Using cached Google public keys")
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
            if response.status_code == 200:
                _cached_keys = response.json()
                logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
                return _cached_keys
            logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
    return None


def verify_claims(claims: dict, now: float = None) -> dict:
    """Audience, issuer, expiry and issued-at checks on a decoded Firebase payload"""
    now = time.time() if now is None else now

    if claims.get("aud") != FIREBASE_PROJECT_ID:
        logger.error("❌ Token audience mismatch")
        raise HTTPException(status_code=401, detail="Invalid token audience")

    expected_issuer = f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}"
    if claims.get("iss") != expected_issuer:
        logger.error("❌ Token issuer mismatch")
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    exp = claims.get("exp", 0)
    if exp < now:
        time_expired = int(now - exp)
        # Only log if significantly expired to reduce noise
        if time_expired > CLOCK_SKEW_SECONDS:
            logger.info(f"ℹ️ Token expired {time_expired}s ago for {claims.get('email')}")
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )

    if claims.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
        logger.warning("⚠️ Token issued in the future")
        raise HTTPException(status_code=401, detail="Invalid token")

    if "auth_time" not in claims:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    return claims


async def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token with full RS256 signature verification
    against Google's published certificates.
    """
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    parts = token.split(".")
    if len(parts) != 3:
        logger.error("❌ Invalid token format: wrong number of parts")
        raise HTTPException(status_code=401, detail="Invalid token format")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64decode(header_b64))
    except ValueError as e:
        logger.error(f"❌ Failed to decode token header: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token header") from e

    kid = header.get("kid")
    alg = header.get("alg")
    if alg != "RS256":
        logger.error(f"❌ Invalid token algorithm: {alg}")
        raise HTTPException(status_code=401, detail="Invalid token algorithm")
    if not kid:
        logger.error("❌ Token missing key ID")
        raise HTTPException(status_code=401, detail="Token missing key ID")

    public_keys = await get_google_public_keys()
    if not public_keys or kid not in public_keys:
        logger.warning(f"⚠️ Key ID {kid} not found in public keys, refreshing and retrying")
        public_keys = await get_google_public_keys(force_refresh=True)
        if not public_keys or kid not in public_keys:
            logger.error(f"❌ Key ID {kid} not found in public keys after retry")
            raise HTTPException(status_code=401, detail="Unable to verify token signature")

    cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())

    try:
        signature = _b64decode(signature_b64)
        cert.public_key().verify(
            signature, f"{header_b64}.{payload_b64}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )
    except Exception as e:
        logger.error(f"❌ Token signature verification failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token signature") from e

    try:
        claims = json.loads(_b64decode(payload_b64))
    except ValueError as e:
        logger.error(f"❌ Failed to decode token payload: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token payload") from e

    verify_claims(claims)
    logger.debug(f"✅ Token cryptographically verified for user: {claims.get('email')}")
    return claims


def resolve_user(db: Session, claims: dict) -> User:
    """Find the owner for verified token claims, creating them on first sign-in"""
    # Firebase ID tokens use 'sub' as the user ID claim
    firebase_uid = claims.get("sub") or claims.get("user_id") or claims.get("uid")
    email = (claims.get("email") or "").lower()
    name = claims.get("name", "")

    if not firebase_uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.firebase_uid == firebase_uid).first()
    if user:
        return user

    if email:
        # Same email signed in through another provider: re-key the existing owner
        existing_user = db.query(User).filter(User.email == email).first()
        if existing_user:
            logger.info(f"🔄 Migrating user {email} to Firebase UID {firebase_uid}")
            existing_user.firebase_uid = firebase_uid
            if name and not existing_user.full_name:
                existing_user.full_name = name
            db.commit()
            db.refresh(existing_user)
            return existing_user

    logger.info(f"🆕 Creating new user: {email}")
    user = User(
        firebase_uid=firebase_uid,
        email=email,
        full_name=name,
        email_verified=bool(claims.get("email_verified")),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"❌ Email {email} was taken by another account (race condition)")
        raise HTTPException(
            status_code=409,
            detail="This email is already registered. Please sign in with your existing account.",
        ) from e
    db.refresh(user)
    logger.info(f"✅ New user created: {user.email}")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get the calendar owner from a Firebase Bearer token"""
    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    claims = await verify_firebase_token(token)
    user = resolve_user(db, claims)
    logger.debug(f"✅ User authenticated: {user.email}")
    return user
