"""
Utility Scripts.

This package contains operational scripts:

- setup_supabase.py: Print the database schema SQL and verify tables exist
- populate_detected_addresses.py: Reverse-geocode businesses that have
  coordinates but no detected address

Run scripts with: python -m scripts.<script_name>
"""
