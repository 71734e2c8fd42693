from decimal import Decimal

import pytest
from sqlalchemy import func, select

from statement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    read_session,
    reset_engine,
)
from statement_kernel.models import Province


@pytest.fixture
def memory_engine():
    engine = init_engine_from_url("sqlite://")
    yield engine
    reset_engine()


class TestEngineLifecycle:
    def test_uninitialized_engine_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_init_returns_engine(self, memory_engine):
        assert get_engine() is memory_engine
        assert memory_engine.dialect.name == "sqlite"

    def test_memory_tables_shared_across_sessions(self, memory_engine):
        create_tables()
        with get_session() as writer:
            writer.add(Province(id=1, name="Kigali City"))
            writer.commit()
        with read_session() as reader:
            assert reader.scalar(select(func.count()).select_from(Province)) == 1

    def test_read_session_discards_changes(self, memory_engine):
        create_tables()
        with read_session() as session:
            session.add(Province(id=2, name="Eastern"))
            session.flush()
        with read_session() as session:
            assert session.get(Province, 2) is None

    def test_amounts_stored_as_numeric(self, memory_engine):
        from statement_kernel.db.base import Base

        create_tables()
        column = Base.metadata.tables["event_data_entries"].c.amount
        assert column.type.scale == 2
        assert isinstance(Decimal("1.00"), column.type.python_type)
