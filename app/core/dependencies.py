import jwt
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import Client

from app.core.config import Settings, load_settings
from app.core.locks import KeyedLocks
from app.core.supabase_client import create_supabase_client
from app.conversations.identity import IdentityResolver
from app.conversations.repository import (
    ConversationRepository,
    SupabaseConversationRepository,
)
from app.conversations.service import ConversationService


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Shared by every request of this process
conversation_locks = KeyedLocks()


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_supabase() -> Client:
    try:
        return create_supabase_client(get_settings())
    except Exception as e:
        logger.error(f"supabase_client_init_failed error={e}")
        raise HTTPException(status_code=500, detail="Store client is not configured.")


def get_repository(client: Client = Depends(get_supabase)) -> ConversationRepository:
    return SupabaseConversationRepository(client)


def get_conversation_service(
    repository: ConversationRepository = Depends(get_repository),
) -> ConversationService:
    return ConversationService(repository, locks=conversation_locks)


def get_identity_resolver(
    client: Client = Depends(get_supabase),
    repository: ConversationRepository = Depends(get_repository),
) -> IdentityResolver:
    return IdentityResolver(client.auth, repository)


def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Return the bearer token, rejecting it early when it can be checked locally.

    With `SUPABASE_JWT_SECRET` configured the signature, expiry and issuer are
    verified here; otherwise the identity provider is the only judge.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing Bearer access token")

    token = credentials.credentials

    if not settings.jwt_secret:
        return token

    try:
        jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"verify_aud": False},
            leeway=60,
        )
        return token

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_member(
    token: str = Depends(verify_token),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> str:
    return resolver.resolve(token).unwrap()
