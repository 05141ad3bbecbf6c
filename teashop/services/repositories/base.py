"""Base repository over one Supabase table."""

from supabase import Client


class BaseRepository:
    """Repositories run the sync client's query builders inline in async methods.

    Subclasses set ``table_name``.
    """

    table_name: str = ""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _table(self):
        return self.client.table(self.table_name)
