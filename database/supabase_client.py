import os
from supabase import create_client, Client
from typing import Optional

def get_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Optional[Client]:
    """
    Initialize and return a Supabase client.

    Explicit arguments win over SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY
    (or SUPABASE_ANON_KEY). Returns None when either is missing.
    """
    url = url or os.environ.get("SUPABASE_URL")
    key = key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_ANON_KEY")

    if not url or not key:
        return None

    return create_client(url, key)
