from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from award_explorer.core.engine import EmbeddedEngine

FACTS_VALUES = """
    ('ACME CORP',       'Metro', 'DPWH',  'Construction', 1000, DATE '2021-01-10', 'Road works',    'Notice A', 'C-001'),
    ('ACME CORP',       'Metro', 'DPWH',  'Construction',  500, DATE '2021-03-05', 'Bridge repair', 'Notice B', 'C-002'),
    ('ACME CORP',       'North', 'DepEd', 'Supplies',      300, DATE '2020-06-01', 'Chairs',        'Notice C', 'C-003'),
    ('ACME CORP',       'South', 'DOH',   'Supplies',       50, DATE '2021-07-07', 'Masks',         'Notice D', 'C-004'),
    ('ACME CORP',       NULL,    'DOH',   'Services',       20, DATE '2021-08-08', 'Cleaning',      'Notice E', 'C-005'),
    ('O''BRIEN TRADING','Metro', 'DPWH',  'Construction',  700, DATE '2021-02-02', 'Drainage',      'Notice F', 'C-006'),
    ('BETA BUILDERS',   'Metro', 'DepEd', 'Construction',  900, DATE '2021-04-04', 'Classrooms',    'Notice G', 'C-007'),
    ('BETA BUILDERS',   'North', 'DPWH',  'Services',      100, DATE '2019-05-05', 'Survey',        'Notice H', 'C-008')
"""

FACTS_SELECT = f"""
    SELECT
        contractor_name,
        area_of_delivery,
        organization_name,
        business_category,
        CAST(amount AS DOUBLE) AS total_contract_amount,
        award_date,
        award_title,
        notice_title,
        contract_no
    FROM (VALUES {FACTS_VALUES}) AS t(
        contractor_name, area_of_delivery, organization_name, business_category,
        amount, award_date, award_title, notice_title, contract_no
    )
"""

# Older layout: no title or contract number columns
HISTORICAL_FACTS_SELECT = f"""
    SELECT contractor_name, area_of_delivery, organization_name, business_category,
           total_contract_amount, award_date
    FROM ({FACTS_SELECT})
"""


def _aggregate_select(facts_path: Path) -> str:
    return f"""
        SELECT
            contractor_name AS entity,
            COUNT(*) AS contract_count,
            SUM(total_contract_amount) AS total_contract_value,
            AVG(total_contract_amount) AS average_contract_value,
            MIN(award_date) AS first_contract_date,
            MAX(award_date) AS last_contract_date
        FROM read_parquet('{facts_path.as_posix()}')
        GROUP BY 1
        UNION ALL
        SELECT 'DORMANT INC', 0, CAST(0 AS DOUBLE), CAST(0 AS DOUBLE), NULL::DATE, NULL::DATE
    """


def write_parquet(path: Path, select_sql: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect()
    try:
        con.execute(f"COPY ({select_sql}) TO '{path.as_posix()}' (FORMAT PARQUET)")
    finally:
        con.close()
    return path


@pytest.fixture
def parquet_base(tmp_path: Path) -> Path:
    """
    A small published tree:
      facts_awards_all_time.parquet, agg_contractor.parquet
      yearly/facts_awards_year_2020.parquet (historical layout)
    """
    base = tmp_path / "parquet"
    facts = write_parquet(base / "facts_awards_all_time.parquet", FACTS_SELECT)
    write_parquet(base / "agg_contractor.parquet", _aggregate_select(facts))
    write_parquet(base / "yearly" / "facts_awards_year_2020.parquet", HISTORICAL_FACTS_SELECT)
    return base


@pytest.fixture
def facts_path(parquet_base: Path) -> str:
    return str(parquet_base / "facts_awards_all_time.parquet")


@pytest.fixture
def historical_facts_path(parquet_base: Path) -> str:
    return str(parquet_base / "yearly" / "facts_awards_year_2020.parquet")


@pytest.fixture
def aggregate_path(parquet_base: Path) -> str:
    return str(parquet_base / "agg_contractor.parquet")


@pytest.fixture
def engine():
    eng = EmbeddedEngine.open()
    yield eng
    eng.close()
