import pytest
from pydantic import ValidationError as PydanticValidationError

from stackviz.MODELS.settings import StackvizSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in StackvizSettings.model_fields:
        monkeypatch.delenv(f"STACKVIZ_{name.upper()}", raising=False)


def test_defaults():
    settings = StackvizSettings()
    assert settings.link_distance == 130
    assert settings.link_strength == 0.01
    assert settings.compose_command == ["docker-compose"]
    assert (1 - settings.alpha_decay) ** settings.alpha_ticks == pytest.approx(settings.alpha_min)


def test_reads_prefixed_variables(monkeypatch):
    monkeypatch.setenv("STACKVIZ_HEALTH_INTERVAL", "2.5")
    monkeypatch.setenv("STACKVIZ_COMPOSE_COMMAND", "docker compose")
    monkeypatch.setenv("STACKVIZ_LOG_LEVEL", "debug")
    monkeypatch.setenv("STACKVIZ_UNKNOWN", "x")
    monkeypatch.setenv("HEALTH_INTERVAL", "99")
    settings = StackvizSettings()
    assert settings.health_interval == 2.5
    assert settings.compose_command == ["docker", "compose"]
    assert settings.log_level == "DEBUG"


def test_env_file_is_overridden_by_environment(monkeypatch, tmp_path):
    env_file = tmp_path / "stackviz.env"
    env_file.write_text("STACKVIZ_LINK_DISTANCE=200\nSTACKVIZ_TICK_INTERVAL=0.1\nOTHER=1\n")
    monkeypatch.setenv("STACKVIZ_LINK_DISTANCE", "150")
    settings = StackvizSettings(_env_file=str(env_file))
    assert settings.link_distance == 150
    assert settings.tick_interval == 0.1


def test_dot_env_in_working_directory(tmp_path):
    (tmp_path / ".env").write_text("STACKVIZ_CHARGE_STRENGTH=45\n")
    assert StackvizSettings().charge_strength == 45


def test_missing_env_file_is_ignored(tmp_path):
    settings = StackvizSettings(_env_file=str(tmp_path / "nope.env"))
    assert settings == StackvizSettings()


def test_invalid_values_rejected(monkeypatch):
    monkeypatch.setenv("STACKVIZ_VELOCITY_DECAY", "1.5")
    with pytest.raises(PydanticValidationError):
        StackvizSettings()
