"""SessionGuard: absolute session lifetime enforcement for Supabase-authenticated clients."""

__version__ = "1.0.0"
