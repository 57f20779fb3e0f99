#!/usr/bin/env python3
"""Supabase database setup script for Aba Directory.

This script outputs the SQL needed to create the tables and the stored
procedures the API calls. Copy the SQL output and run it in the Supabase
SQL Editor.

Usage:
    # Print all SQL to console
    python scripts/setup_supabase.py

    # Print SQL and save to file
    python scripts/setup_supabase.py --output setup.sql

    # Verify tables exist
    python scripts/setup_supabase.py --verify

Tables Created:
    - users: Profiles and roles of authenticated users
    - markets: Physical markets businesses trade in
    - business_categories / business_categories_stats: Categories and counters
    - businesses: Directory listings
    - agents: Field agents registering businesses
    - kyc_verifications: Identity documents under review
    - activities: Audit log
"""

import argparse
import asyncio
import sys
from datetime import datetime

REQUIRED_TABLES = [
    "users",
    "markets",
    "business_categories",
    "business_categories_stats",
    "businesses",
    "agents",
    "kyc_verifications",
    "activities",
]

# =============================================================================
# SQL Schema Definitions
# =============================================================================

SCHEMA_SQL = """
-- =============================================================================
-- Aba Directory Database Schema for Supabase
-- =============================================================================
-- Generated: {generated_at}
--
-- Instructions:
-- 1. Open your Supabase project dashboard
-- 2. Go to SQL Editor
-- 3. Paste this entire script
-- 4. Click "Run" to execute
-- =============================================================================

CREATE EXTENSION IF NOT EXISTS "uuid-ossp";

-- =============================================================================
-- Table: users
-- =============================================================================
-- One row per auth user. The role column drives API authorization.
-- =============================================================================

CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    email TEXT,
    full_name TEXT,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'user',
    status TEXT,
    business_name TEXT,
    created_by UUID,
    agent_user_id UUID,
    avatar_url TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT users_role_valid CHECK (role IN ('admin', 'agent', 'user'))
);

CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);
CREATE INDEX IF NOT EXISTS idx_users_agent_user_id ON users(agent_user_id);

-- =============================================================================
-- Table: markets
-- =============================================================================

CREATE TABLE IF NOT EXISTS markets (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    name TEXT NOT NULL UNIQUE,
    location TEXT,
    description TEXT,
    image_url TEXT,
    is_active BOOLEAN DEFAULT true,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT markets_name_not_empty CHECK (name <> '')
);

-- =============================================================================
-- Tables: business_categories, business_categories_stats
-- =============================================================================
-- count is denormalized and refreshed by update_business_category_counts().
-- =============================================================================

CREATE TABLE IF NOT EXISTS business_categories (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    title TEXT NOT NULL UNIQUE,
    description TEXT,
    image_path TEXT,
    icon_type TEXT,
    link_path TEXT,
    count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS business_categories_stats (
    category_id UUID PRIMARY KEY REFERENCES business_categories(id) ON DELETE CASCADE,
    total_businesses INTEGER NOT NULL DEFAULT 0,
    total_views INTEGER NOT NULL DEFAULT 0,
    total_clicks INTEGER NOT NULL DEFAULT 0,
    last_updated TIMESTAMPTZ DEFAULT NOW()
);

-- =============================================================================
-- Table: businesses
-- =============================================================================

CREATE TABLE IF NOT EXISTS businesses (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    name TEXT NOT NULL,
    description TEXT,
    market_id UUID REFERENCES markets(id) ON DELETE SET NULL,
    category_id UUID REFERENCES business_categories(id) ON DELETE SET NULL,
    owner_id UUID REFERENCES users(id) ON DELETE SET NULL,
    created_by UUID REFERENCES users(id) ON DELETE SET NULL,
    contact_phone TEXT,
    contact_email TEXT,
    address TEXT,
    logo_url TEXT,
    website TEXT,
    facebook TEXT,
    instagram TEXT,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    location_accuracy DOUBLE PRECISION,
    location_timestamp TIMESTAMPTZ,
    detected_address TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    services JSONB,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT businesses_name_not_empty CHECK (name <> ''),
    CONSTRAINT businesses_status_valid CHECK (status IN ('active', 'pending', 'suspended')),
    CONSTRAINT businesses_latitude_range CHECK (latitude IS NULL OR latitude BETWEEN -90 AND 90),
    CONSTRAINT businesses_longitude_range CHECK (longitude IS NULL OR longitude BETWEEN -180 AND 180)
);

CREATE INDEX IF NOT EXISTS idx_businesses_status ON businesses(status);
CREATE INDEX IF NOT EXISTS idx_businesses_category_id ON businesses(category_id);
CREATE INDEX IF NOT EXISTS idx_businesses_market_id ON businesses(market_id);
CREATE INDEX IF NOT EXISTS idx_businesses_created_by ON businesses(created_by);
CREATE INDEX IF NOT EXISTS idx_businesses_created_at ON businesses(created_at DESC);

-- =============================================================================
-- Table: agents
-- =============================================================================

CREATE TABLE IF NOT EXISTS agents (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID UNIQUE REFERENCES users(id) ON DELETE CASCADE,
    full_name TEXT,
    email TEXT,
    phone TEXT,
    role TEXT DEFAULT 'agent',
    status TEXT NOT NULL DEFAULT 'active',
    weekly_target INTEGER,
    current_week_registrations INTEGER NOT NULL DEFAULT 0,
    total_registrations INTEGER NOT NULL DEFAULT 0,
    total_businesses INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT agents_status_valid CHECK (status IN ('active', 'inactive', 'pending', 'suspended'))
);

-- =============================================================================
-- Table: kyc_verifications
-- =============================================================================

CREATE TABLE IF NOT EXISTS kyc_verifications (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    document_type TEXT NOT NULL,
    document_number TEXT,
    document_image_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    rejection_reason TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    processed_at TIMESTAMPTZ,

    CONSTRAINT kyc_status_valid CHECK (status IN ('pending', 'approved', 'rejected'))
);

CREATE INDEX IF NOT EXISTS idx_kyc_user_created ON kyc_verifications(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_kyc_status ON kyc_verifications(status);

-- =============================================================================
-- Table: activities
-- =============================================================================

CREATE TABLE IF NOT EXISTS activities (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    user_id UUID,
    agent_id UUID,
    activity_type TEXT NOT NULL,
    description TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'completed',
    resource_type TEXT,
    resource_id TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_activities_created_at ON activities(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_activities_agent_id ON activities(agent_id);

-- =============================================================================
-- Stored procedures
-- =============================================================================

CREATE OR REPLACE FUNCTION increment_category_view(p_category_id UUID)
RETURNS VOID AS $$
BEGIN
    INSERT INTO business_categories_stats (category_id, total_views, last_updated)
    VALUES (p_category_id, 1, NOW())
    ON CONFLICT (category_id)
    DO UPDATE SET total_views = business_categories_stats.total_views + 1,
                  last_updated = NOW();
END;
$$ LANGUAGE plpgsql SECURITY DEFINER;

CREATE OR REPLACE FUNCTION update_business_category_counts()
RETURNS TABLE (categories_updated INTEGER, total_businesses INTEGER) AS $$
BEGIN
    UPDATE business_categories c
    SET count = (SELECT COUNT(*) FROM businesses b WHERE b.category_id = c.id);

    INSERT INTO business_categories_stats (category_id, total_businesses, last_updated)
    SELECT c.id, c.count, NOW() FROM business_categories c
    ON CONFLICT (category_id)
    DO UPDATE SET total_businesses = EXCLUDED.total_businesses,
                  last_updated = NOW();

    RETURN QUERY
    SELECT (SELECT COUNT(*)::INTEGER FROM business_categories),
           (SELECT COUNT(*)::INTEGER FROM businesses WHERE category_id IS NOT NULL);
END;
$$ LANGUAGE plpgsql SECURITY DEFINER;
"""

DROP_TABLES_SQL = """
-- =============================================================================
-- WARNING: This will DELETE ALL DATA in the Aba Directory tables!
-- =============================================================================

DROP FUNCTION IF EXISTS update_business_category_counts() CASCADE;
DROP FUNCTION IF EXISTS increment_category_view(UUID) CASCADE;
DROP TABLE IF EXISTS activities CASCADE;
DROP TABLE IF EXISTS kyc_verifications CASCADE;
DROP TABLE IF EXISTS agents CASCADE;
DROP TABLE IF EXISTS businesses CASCADE;
DROP TABLE IF EXISTS business_categories_stats CASCADE;
DROP TABLE IF EXISTS business_categories CASCADE;
DROP TABLE IF EXISTS markets CASCADE;
DROP TABLE IF EXISTS users CASCADE;
"""


# =============================================================================
# Verification Functions
# =============================================================================

def check_tables(supabase) -> dict:
    """Query each required table once and report which are missing or failing."""
    results = {
        'success': True,
        'tables': {},
        'missing': [],
        'errors': [],
    }

    for table in REQUIRED_TABLES:
        try:
            response = supabase.table(table).select('*').limit(1).execute()
            results['tables'][table] = {
                'exists': True,
                'accessible': True,
                'row_count': len(response.data) if response.data else 0,
            }
        except Exception as e:
            error_str = str(e)
            missing = getattr(e, 'code', None) == '42P01' or 'does not exist' in error_str.lower()
            if missing:
                results['tables'][table] = {
                    'exists': False,
                    'accessible': False,
                }
                results['missing'].append(table)
            else:
                results['tables'][table] = {
                    'exists': 'unknown',
                    'accessible': False,
                    'error': error_str[:100],
                }
                results['errors'].append(f"{table}: {error_str[:100]}")
            results['success'] = False

    return results


async def verify_tables() -> dict:
    """Verify that all required tables exist in Supabase."""
    try:
        from src.api.dependencies import get_supabase

        return await asyncio.to_thread(check_tables, get_supabase())
    except Exception as e:
        return {
            'success': False,
            'error': str(e),
        }


def print_verification_results(results: dict) -> None:
    """Print verification results in a formatted way."""
    print("\n" + "=" * 70)
    print("Supabase Table Verification Results")
    print("=" * 70)

    if 'error' in results:
        print(f"\nError: {results['error']}")
        return

    print(f"\nOverall Status: {'PASS' if results['success'] else 'FAIL'}")
    print("-" * 70)

    print("\nTable Status:")
    for table, info in results.get('tables', {}).items():
        status = "OK" if info.get('exists') is True and info.get('accessible') else "MISSING"
        icon = "[+]" if status == "OK" else "[-]"
        print(f"  {icon} {table}: {status}")
        if info.get('error'):
            print(f"      Error: {info['error']}")

    if results.get('missing'):
        print(f"\nMissing Tables: {', '.join(results['missing'])}")
        print("\nRun this script without --verify to get the SQL to create missing tables.")

    if results.get('errors'):
        print("\nErrors:")
        for error in results['errors']:
            print(f"  - {error}")

    print("\n" + "=" * 70)


# =============================================================================
# Main Functions
# =============================================================================

def get_sql(sql_type: str = 'setup') -> str:
    if sql_type == 'drop':
        return DROP_TABLES_SQL
    return SCHEMA_SQL.format(
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    )


def main():
    """Main entry point for the setup script."""
    parser = argparse.ArgumentParser(
        description='Generate Supabase setup SQL for Aba Directory',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Print setup SQL to console
    python scripts/setup_supabase.py

    # Save setup SQL to file
    python scripts/setup_supabase.py --output setup.sql

    # Verify tables exist in Supabase
    python scripts/setup_supabase.py --verify

    # Print drop SQL (use with caution!)
    python scripts/setup_supabase.py --type drop
        """
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        help='Save SQL to file instead of printing'
    )

    parser.add_argument(
        '--type', '-t',
        type=str,
        choices=['setup', 'drop'],
        default='setup',
        help='Type of SQL to generate (default: setup)'
    )

    parser.add_argument(
        '--verify', '-v',
        action='store_true',
        help='Verify that tables exist in Supabase'
    )

    args = parser.parse_args()

    if args.verify:
        results = asyncio.run(verify_tables())
        print_verification_results(results)
        sys.exit(0 if results.get('success') else 1)

    sql = get_sql(args.type)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(sql)
        print(f"SQL saved to: {args.output}")
    else:
        if args.type == 'drop':
            print("\n" + "!" * 70)
            print("WARNING: This will DELETE ALL DATA!")
            print("!" * 70 + "\n")
        print(sql)


if __name__ == '__main__':
    main()
