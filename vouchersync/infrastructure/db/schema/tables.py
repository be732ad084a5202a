from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_SITES_SQL = """
CREATE TABLE IF NOT EXISTS sites (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    location TEXT,
    omada_site_id TEXT,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
    last_sync TEXT,
    created_at TEXT NOT NULL
);
"""

SCHEMA_OMADA_CREDENTIALS_SQL = """
CREATE TABLE IF NOT EXISTS omada_credentials (
    id TEXT PRIMARY KEY,
    omada_url TEXT NOT NULL,
    omadac_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    client_secret TEXT NOT NULL,
    created_by TEXT,
    created_at TEXT NOT NULL
);
"""

SCHEMA_PLANS_SQL = """
CREATE TABLE IF NOT EXISTS plans (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL,
    name TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    unit_price TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE
);
"""

SCHEMA_VOUCHERS_SQL = """
CREATE TABLE IF NOT EXISTS vouchers (
    id TEXT PRIMARY KEY,
    code TEXT NOT NULL UNIQUE,
    plan_id TEXT,
    site_id TEXT NOT NULL,
    seller_id TEXT,
    created_by TEXT,
    omada_group_id TEXT,
    omada_voucher_id TEXT,
    unit_price TEXT,
    status TEXT NOT NULL DEFAULT 'available'
        CHECK (status IN ('available', 'in_use', 'expired', 'used')),
    used_at TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (plan_id) REFERENCES plans (id) ON DELETE SET NULL,
    FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_vouchers_site_id ON vouchers (site_id);
"""

SCHEMA_SALES_SQL = """
CREATE TABLE IF NOT EXISTS sales (
    id TEXT PRIMARY KEY,
    voucher_id TEXT NOT NULL UNIQUE,
    seller_id TEXT,
    site_id TEXT NOT NULL,
    plan_id TEXT,
    amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    sale_date TEXT NOT NULL,
    payment_method TEXT NOT NULL DEFAULT 'manual',
    notes TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (voucher_id) REFERENCES vouchers (id),
    FOREIGN KEY (site_id) REFERENCES sites (id)
);
CREATE INDEX IF NOT EXISTS idx_sales_site_id ON sales (site_id);
CREATE INDEX IF NOT EXISTS idx_sales_payment_method ON sales (payment_method);
"""

SCHEMA_CASH_CLOSURES_SQL = """
CREATE TABLE IF NOT EXISTS cash_closures (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL,
    seller_id TEXT,
    total_vouchers_used INTEGER NOT NULL DEFAULT 0,
    total_vouchers_in_use INTEGER NOT NULL DEFAULT 0,
    total_amount TEXT NOT NULL,
    summary TEXT NOT NULL,
    closure_date TEXT NOT NULL,
    FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_cash_closures_site_id ON cash_closures (site_id);
"""

SCHEMA_SYNC_RUNS_SQL = """
CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT,
    sites_processed INTEGER DEFAULT 0,
    sites_failed INTEGER DEFAULT 0,
    vouchers_seen INTEGER DEFAULT 0,
    vouchers_updated INTEGER DEFAULT 0,
    sales_created INTEGER DEFAULT 0,
    error_count INTEGER DEFAULT 0,
    notes TEXT
);
"""

ALL_TABLES_SQL = (
    SCHEMA_SITES_SQL,
    SCHEMA_OMADA_CREDENTIALS_SQL,
    SCHEMA_PLANS_SQL,
    SCHEMA_VOUCHERS_SQL,
    SCHEMA_SALES_SQL,
    SCHEMA_CASH_CLOSURES_SQL,
    SCHEMA_SYNC_RUNS_SQL,
)
