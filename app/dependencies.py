# app/dependencies.py

import logging
from typing import Callable, Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import JWTError, jwt

from app.core.config import settings
from app.crud import user as crud_user
from app.db.session import SessionLocal
from app.models.user import User

# --- Инициализация логгера ---
logger = logging.getLogger(__name__)

# --- Схемы аутентификации ---
strict_bearer_scheme = HTTPBearer(auto_error=True)

# --- Управление сессией БД ---
def get_db_session_instance() -> Session:
    """Создает и возвращает экземпляр сессии БД."""
    return SessionLocal()

def get_db() -> Iterator[Session]:
    """
    Основная зависимость FastAPI для получения сессии БД.
    Это генератор, который корректно работает с `Depends`.
    """
    db = get_db_session_instance()
    try:
        yield db
    finally:
        db.close()

# --- Зависимости аутентификации и авторизации ---

def user_id_from_token(token: str) -> Optional[int]:
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    user_id = payload.get("sub")
    if user_id is None:
        return None
    return int(user_id)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(strict_bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    ОБЯЗАТЕЛЬНАЯ зависимость.
    Требует валидный токен. Если его нет или он невалиден - вызывает ошибку 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        user_id = user_id_from_token(credentials.credentials)
        if user_id is None:
            logger.warning("Token payload is missing 'sub' (user_id).")
            raise credentials_exception
    except (JWTError, ValueError) as e:
        logger.warning(f"JWT Error during token decoding: {e}")
        raise credentials_exception

    user = crud_user.get_user_by_id(db, user_id)
    if user is None:
        logger.warning(f"User with ID {user_id} from token not found in DB.")
        raise credentials_exception
    request.state.user = user
    logger.debug(f"Authenticated user ID: {user.id} (role: {user.role})")
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """
    Фабрика зависимостей: пропускает только пользователей с одной из указанных ролей.
    Администратор проходит всегда.
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != "admin" and current_user.role not in roles:
            logger.warning(f"Permission denied for user {current_user.id} with role '{current_user.role}'. Required: {roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to access this resource."
            )
        return current_user
    return dependency


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Зависимость для защиты админских эндпоинтов."""
    if current_user.role != "admin":
        logger.warning(f"Admin access denied for user {current_user.id}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource."
        )
    return current_user


async def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Проверяет общий секрет во внутренних вызовах от сервиса продажи билетов."""
    if x_internal_secret != settings.INTERNAL_WEBHOOK_SECRET:
        logger.warning("Internal call rejected: invalid X-Internal-Secret header.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid internal secret")


# --- Сервисы, созданные при старте приложения ---

def get_conversion_recorder(request: Request):
    return request.app.state.conversion_recorder
