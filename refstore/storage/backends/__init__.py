"""Storage backend adapters.

Exports:
    `ports` defines the protocol and the Null backend; `supabase` and `local`
    implement it against Supabase Storage and the local filesystem.
"""

__all__ = ["local", "ports", "supabase"]
