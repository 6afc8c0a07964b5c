import pytest
from pydantic import ValidationError

from bazaar_jobs.config import Settings

SECURE_KEY = "k" * 40


def test_disabled_jobs_parsing():
    s = Settings(_env_file=None, DISABLED_JOBS=" recalculate-karma, ,delete-audit-logs ")
    assert s.disabled_jobs_set == {"recalculate-karma", "delete-audit-logs"}
    assert Settings(_env_file=None, DISABLED_JOBS="").disabled_jobs_set == set()


def test_database_url_normalized():
    s = Settings(_env_file=None, DATABASE_URL="postgres://u:p@db:5432/bazaar")
    assert s.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/bazaar"
    s = Settings(_env_file=None, DATABASE_URL="postgresql://u:p@db:5432/bazaar")
    assert s.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/bazaar"


@pytest.mark.parametrize("field,value", [("KARMA_BATCH_SIZE", 0), ("KARMA_BATCH_PAUSE_SECONDS", -1)])
def test_batch_settings_validated(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_unknown_app_env():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, APP_ENV="prod")


def test_production_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValidationError, match="DATABASE_URL"):
        Settings(_env_file=None, APP_ENV="production", ADMIN_API_KEY=SECURE_KEY)


@pytest.mark.parametrize("key", ["", "short"])
def test_production_requires_admin_key(key):
    with pytest.raises(ValidationError, match="ADMIN_API_KEY"):
        Settings(
            _env_file=None,
            APP_ENV="production",
            DATABASE_URL="postgresql+asyncpg://u:p@db/bazaar",
            ADMIN_API_KEY=key,
        )


def test_production_ok():
    s = Settings(
        _env_file=None,
        APP_ENV="staging",
        DATABASE_URL="postgresql+asyncpg://u:p@db/bazaar",
        ADMIN_API_KEY=SECURE_KEY,
    )
    assert s.is_production is True


def test_development_warns_on_defaults():
    with pytest.warns(UserWarning, match="ADMIN_API_KEY"):
        Settings(_env_file=None, ADMIN_API_KEY="")
