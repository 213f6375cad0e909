"""
Property-management domain services.

Each module takes a store (Supabase or in-memory) plus the acting user's
profile dict and raises ``management.errors`` exceptions on bad input,
missing rows, ownership violations or invalid state transitions.
"""
