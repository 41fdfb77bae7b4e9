"""
SQL schema for the pool sniper database.
Pool records are stored as JSON documents keyed by an integer id; positions
track the buy/sell lifecycle of each sniped pool.
"""

# SQL commands to create tables
CREATE_TABLES_SQL = """
-- Pool records: one JSON document per discovered pool
CREATE TABLE IF NOT EXISTS pool_records (
    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
    amm_id TEXT NOT NULL,
    document TEXT NOT NULL,  -- JSON-encoded pool record
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Positions: one row per sniper run against a pool
CREATE TABLE IF NOT EXISTS positions (
    position_id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id TEXT NOT NULL,
    amm_id TEXT NOT NULL,
    buy_amount TEXT NOT NULL,
    sell_target_percentage TEXT NOT NULL,
    target_price TEXT NOT NULL,
    buy_tx TEXT,
    sell_tx TEXT,
    status TEXT NOT NULL,  -- 'idle', 'bought', 'watching', 'sold', 'error'
    error TEXT,
    opened_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_pool_records_amm ON pool_records(amm_id);
CREATE INDEX IF NOT EXISTS idx_positions_status ON positions(status);
CREATE INDEX IF NOT EXISTS idx_positions_record ON positions(record_id);
"""
