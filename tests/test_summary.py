from __future__ import annotations

from datetime import date

import pytest

from award_explorer.core.summary import SummaryStats, compute_summary, rows_to_csv

ROWS = [
    {
        "entity": "ACME CORP",
        "contract_count": 5,
        "total_contract_value": 1870.0,
        "average_contract_value": 374.0,
        "first_contract_date": date(2020, 6, 1),
        "last_contract_date": date(2021, 8, 8),
    },
    {
        "entity": "BUILDERS, INC",
        "contract_count": 3,
        "total_contract_value": 1000.4,
        "average_contract_value": 333.47,
        "first_contract_date": None,
        "last_contract_date": "2021-04-04",
    },
]


def test_summary_of_visible_rows():
    stats = compute_summary(ROWS)
    assert stats.total_contracts == 8
    assert stats.total_value == pytest.approx(2870.4)
    assert stats.average_value == pytest.approx(2870.4 / 8)
    assert stats.top_entity == "ACME CORP"
    assert stats.top_entity_value == pytest.approx(1870.0)


def test_summary_treats_bad_numbers_as_zero():
    stats = compute_summary([{"entity": "X", "contract_count": "n/a", "total_contract_value": None}])
    assert stats.total_contracts == 0
    assert stats.total_value == 0
    assert stats.average_value == 0


def test_summary_of_nothing():
    assert compute_summary([]) == SummaryStats()


def test_csv_export():
    text = rows_to_csv(ROWS)
    assert text.splitlines() == [
        "Entity,Contracts,Total Value,Avg Value,First,Last",
        "ACME CORP,5,1870,374,2020-06-01,2021-08-08",
        "BUILDERS; INC,3,1000,333,,2021-04-04",
    ]


def test_csv_of_nothing():
    assert rows_to_csv([]) == ""
