#!/usr/bin/env python3
"""
Alembic migrations against a scratch SQLite file.
"""

import argparse
import pytest
import sys
import os

# Add app to Python path for testing
ROOT = os.path.join(os.path.dirname(__file__), '..')
sys.path.insert(0, ROOT)

import sqlalchemy as sa
from alembic import command
from alembic.config import Config

from consultbook.core.errors import ConfigurationError


def _config(url):
    # no ini file: keeps alembic's fileConfig away from the test loggers
    cfg = Config()
    cfg.set_main_option("script_location", os.path.join(ROOT, "alembic"))
    cfg.cmd_opts = argparse.Namespace(x=[f"dburl={url}"])
    return cfg


@pytest.mark.integration
def test_upgrade_builds_schema_and_downgrade_drops_it(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrate.db'}"
    command.upgrade(_config(url), "head")

    engine = sa.create_engine(url)
    inspector = sa.inspect(engine)
    assert {"users", "password_reset_tokens", "bookings", "blocked_slots"} <= set(inspector.get_table_names())
    active_slot = next(ix for ix in inspector.get_indexes("bookings") if ix["name"] == "uq_bookings_active_slot")
    assert active_slot["unique"]
    engine.dispose()

    command.downgrade(_config(url), "base")
    engine = sa.create_engine(url)
    assert "bookings" not in sa.inspect(engine).get_table_names()
    engine.dispose()


@pytest.mark.unit
def test_unsupported_backend_is_refused():
    with pytest.raises(ConfigurationError, match="Unsupported database backend"):
        command.upgrade(_config("mysql://consultbook@localhost/consultbook"), "head")
