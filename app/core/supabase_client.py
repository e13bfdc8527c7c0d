import logging

from supabase import create_client, Client

from app.core.config import Settings


logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    logger.info(f"supabase_client_init url={settings.supabase_url}")
    return create_client(settings.supabase_url, settings.supabase_key)
