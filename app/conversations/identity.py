import logging
from typing import Optional

import httpx
from supabase import AuthApiError

from app.core.errors import ErrorKind, Result, fail, ok, propagate
from app.conversations.repository import ConversationRepository


logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Maps a bearer token to the caller's profile id.

    Two lookups: the identity provider turns the token into an auth user id
    (`auth.get_user`), then `profiles.external_identity` turns that into the
    member id used by conversations. Nothing is written.
    """

    def __init__(self, auth, repository: ConversationRepository):
        self._auth = auth
        self._repository = repository

    def resolve(self, credential: Optional[str]) -> Result[str]:
        if not credential:
            return fail(ErrorKind.UNAUTHENTICATED, "Missing Bearer access token.")

        try:
            user_data = self._auth.get_user(jwt=credential)
        except AuthApiError as error:
            logger.info(f"identity_rejected error={error}")
            return fail(ErrorKind.UNAUTHENTICATED, "Invalid or expired token.")
        except httpx.HTTPError as error:
            logger.error(f"identity_provider_unreachable error={error}")
            return fail(ErrorKind.INFRASTRUCTURE, "Identity provider unreachable.")

        if not user_data or not user_data.user:
            return fail(ErrorKind.UNAUTHENTICATED, "Invalid authentication token.")

        auth_user_id = str(user_data.user.id)

        profile = self._repository.find_profile_by_identity(auth_user_id)
        if profile.failed:
            return propagate(profile)

        if profile.value is None:
            logger.warning(f"profile_missing auth_user_id={auth_user_id}")
            return fail(
                ErrorKind.NOT_FOUND, "No profile found for the current authenticated user."
            )

        return ok(profile.value.id)
