import pytest

from presence_tracker.config import DEFAULT_TIMEZONE, load_config


def test_load_config_defaults(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("GUILD_ID", "1234")
    monkeypatch.delenv("TIMEZONE", raising=False)
    monkeypatch.delenv("DATABASE_PATH", raising=False)

    config = load_config()

    assert config.guild_id == 1234
    assert config.timezone.key == DEFAULT_TIMEZONE
    assert str(config.db_path) == "presence.db"


def test_load_config_rejects_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("GUILD_ID", "abc")
    with pytest.raises(ValueError, match="GUILD_ID"):
        load_config()

    monkeypatch.setenv("GUILD_ID", "1234")
    monkeypatch.setenv("TIMEZONE", "Mars/Olympus")
    with pytest.raises(ValueError, match="TIMEZONE"):
        load_config()

    monkeypatch.delenv("DISCORD_TOKEN")
    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        load_config()
