from supabase import create_client, Client, ClientOptions
from civic_access.config.settings import settings


def _create(key: str) -> Client:
    options = ClientOptions(
        schema=settings.supabase_schema,
        postgrest_client_timeout=settings.supabase_timeout_seconds,
    )
    return create_client(settings.supabase_url, key, options=options)


class SupabaseClient:
    """Process-wide clients: the anon client for reads made on behalf of users,
    and the service-role client for role grants and notification inserts."""
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = _create(settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Falls back to the anon client when no service_role key is configured."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = _create(settings.supabase_service_role_key)
        return cls._service_client or cls.get_client()

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()
