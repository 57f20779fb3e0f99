"""
Test Suite.

- unit/: Service logic against the in-memory Supabase fake
- integration/: HTTP endpoints through FastAPI's TestClient
- fakes.py: In-memory Supabase client shared by both
"""
