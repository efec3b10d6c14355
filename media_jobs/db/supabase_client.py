"""Service-role Supabase client construction."""

from supabase import create_client, Client

from media_jobs.config import Settings, settings as default_settings

_client: Client | None = None


def create_supabase(settings: Settings) -> Client:
    """Build a new service-role client. Raises ConfigurationError when unset."""
    settings.require("supabase_url", "supabase_service_role_key")
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
    )


def get_supabase() -> Client:
    """Get or create the process-wide client used by the entry point."""
    global _client
    if _client is None:
        _client = create_supabase(default_settings)
    return _client
