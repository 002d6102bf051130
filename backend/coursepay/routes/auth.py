"""
Auth Routes — Registration and login issuing Bearer tokens.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coursepay.database import get_db
from coursepay.errors import AuthError, ValidationError
from coursepay.models.user import User
from coursepay.schemas.schemas import RegisterRequest, LoginRequest, AuthResponse, UserOut
from coursepay.utils.logger import get_logger
from coursepay.utils.rate_limiter import rate_limit
from coursepay.utils.security import ROLES, create_access_token, hash_password, verify_password
from coursepay.utils.validators import validate_email

router = APIRouter(prefix="/api/auth", tags=["Auth"])
logger = get_logger(__name__)


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        token=create_access_token(user.id, user.role),
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    _throttle: bool = Depends(rate_limit(requests=10, window=60, scope="register")),
):
    """Create an account and return a token for it."""
    email = payload.email.strip().lower()
    if not validate_email(email):
        raise ValidationError("Invalid email address")
    if payload.role not in ROLES:
        raise ValidationError(f"Role must be one of {', '.join(ROLES)}")
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("User already exists")

    user = User(
        name=payload.name.strip(),
        email=email,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("registered user %s (%s)", user.id, user.role)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    _throttle: bool = Depends(rate_limit(requests=10, window=60, scope="login")),
):
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(user.password_hash, payload.password):
        raise AuthError("Invalid email or password")
    if not user.is_active:
        raise AuthError("Account is disabled")
    return _auth_response(user)
