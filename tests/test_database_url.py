import pytest
from sqlalchemy.engine import make_url

from src.core.config import Settings, scheduling_config_from_settings
from src.core.database import resolve_async_database_url


@pytest.mark.parametrize(
    ("raw", "driver"),
    [
        ("postgresql://garage:secret@db:5432/garage", "postgresql+asyncpg"),
        ("postgres://garage:secret@db:5432/garage", "postgresql+asyncpg"),
        ("mysql://garage:secret@db:3306/garage", "mysql+asyncmy"),
        ("sqlite:///./garage.db", "sqlite+aiosqlite"),
    ],
)
def test_sync_urls_are_coerced_to_async_drivers(raw, driver):
    assert make_url(resolve_async_database_url(raw)).drivername == driver


def test_coercion_keeps_credentials_and_query():
    resolved = resolve_async_database_url("mysql://garage:secret@db:3306/garage?charset=utf8mb4")
    url = make_url(resolved)
    assert url.password == "secret"
    assert url.query["charset"] == "utf8mb4"


def test_async_url_passes_through():
    assert resolve_async_database_url("sqlite+aiosqlite:///./garage.db") == "sqlite+aiosqlite:///./garage.db"


def test_unsupported_dialect_raises():
    with pytest.raises(ValueError, match="Unsupported database dialect"):
        resolve_async_database_url("mssql+pyodbc://garage:secret@db:1433/garage")


def test_scheduling_rules_come_from_settings():
    source = Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        JWT_SECRET="x",
        BAY_CAPACITY=5,
        OPERATING_DAYS=[0, 1, 2, 3, 4],
        MODIFICATION_CUTOFF_HOURS=12,
        DEFAULT_TIMEZONE="UTC",
    )
    config = scheduling_config_from_settings(source)
    assert config.capacity == 5
    assert config.operating_days == frozenset({0, 1, 2, 3, 4})
    assert config.modification_cutoff_hours == 12
    assert config.tzinfo.key == "UTC"
    assert config.cancellation.free_until_hours == 48
