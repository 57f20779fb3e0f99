"""Domain services over the Supabase backend.

Each module exposes plain functions taking a Supabase client as their first
argument; route handlers inject the client through FastAPI dependencies.
"""
