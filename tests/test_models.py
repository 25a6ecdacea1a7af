"""Tests for table definitions"""
from safereturn.models import Base


def test_timestamps_have_no_python_defaults():
    # Timestamps are written as wall clock by the request handlers
    for table in Base.metadata.sorted_tables:
        for column in table.columns:
            if column.name in ("created_at", "updated_at", "timestamp"):
                assert column.default is None, f"{table.name}.{column.name}"
