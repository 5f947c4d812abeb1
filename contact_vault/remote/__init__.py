"""Best-effort remote sync target."""

from contact_vault.remote.client import DEFAULT_TOKEN_ENV, RemoteSyncClient, RemoteSyncError

__all__ = ["RemoteSyncClient", "RemoteSyncError", "DEFAULT_TOKEN_ENV"]
