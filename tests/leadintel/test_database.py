"""Tests for session helpers."""
from unittest.mock import MagicMock, patch

import pytest

from leadintel import database


class TestSessionScope:

    def test_closes_on_success(self):
        session = MagicMock()
        with patch('leadintel.database.get_session', return_value=session):
            with database.session_scope() as s:
                assert s is session
        session.close.assert_called_once()
        session.rollback.assert_not_called()

    def test_rolls_back_and_reraises(self):
        session = MagicMock()
        with patch('leadintel.database.get_session', return_value=session):
            with pytest.raises(RuntimeError):
                with database.session_scope():
                    raise RuntimeError('boom')
        session.rollback.assert_called_once()
        session.close.assert_called_once()


class TestInitDb:

    def test_creates_leads_table(self, db_engine):
        from sqlalchemy import inspect
        with patch('leadintel.database.engine', db_engine):
            database.init_db()
        assert 'leads' in inspect(db_engine).get_table_names()
