"""
Tests for how the Store reports driver failures.
"""

import pytest
from sqlalchemy import text

from src.linkguard.core.exceptions import PersistenceError
from src.linkguard.core.store import Store


class TestStoreErrors:
    """SQLAlchemy errors become PersistenceError without driver text."""

    def test_write_failure_carries_no_statement(self, store: Store) -> None:
        with pytest.raises(PersistenceError) as exc_info:
            with store.write() as session:
                session.execute(
                    text("INSERT INTO missing_table (phone) VALUES (:phone)"),
                    {"phone": "+14155550123"},
                )

        assert str(exc_info.value) == "Storage write failed"
        assert exc_info.value.details == {}
        assert exc_info.value.status_code == 500

    def test_read_failure_carries_no_statement(self, store: Store) -> None:
        with pytest.raises(PersistenceError) as exc_info:
            with store.read() as session:
                session.execute(text("SELECT * FROM missing_table"))

        assert str(exc_info.value) == "Storage read failed"
        assert exc_info.value.details == {}

    def test_engine_hides_bound_parameters(self, store: Store) -> None:
        assert store._require_engine().hide_parameters is True
