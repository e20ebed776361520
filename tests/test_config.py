from editor_proxy.config import CostTable, Settings, parse_cost_table


def test_parse_cost_table():
    assert parse_cost_table("5=$0.12, 10=$0.24") == {5: "$0.12", 10: "$0.24"}


def test_parse_cost_table_skips_malformed_entries():
    assert parse_cost_table("5=$0.12,ten=$1,7=,") == {5: "$0.12"}


def test_cost_table_defaults():
    table = CostTable()
    assert table.estimate(5) == "$0.12"
    assert table.estimate(10) == "$0.24"
    assert table.estimate(5.5) == "$0.24"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("KLING_ACCESS_KEY", "env-ak")
    monkeypatch.setenv("KLING_SECRET_KEY", "env-sk")
    monkeypatch.setenv("KLING_API_BASE", "https://kling.example/")
    monkeypatch.setenv("VIDEO_COST_TABLE", "5=$1,10=$2")
    monkeypatch.setenv("VIDEO_DEFAULT_COST", "$3")

    settings = Settings()

    assert settings.kling_configured
    assert settings.kling_api_base == "https://kling.example"
    assert settings.kling_endpoint == "kling.example"
    assert settings.cost_table.estimate(10) == "$2"
    assert settings.cost_table.estimate(15) == "$3"


def test_constructor_arguments_win(monkeypatch):
    monkeypatch.setenv("FAL_KEY", "from-env")
    assert Settings(fal_key="explicit").fal_key == "explicit"


def test_missing_secret_means_not_configured(monkeypatch):
    monkeypatch.delenv("KLING_ACCESS_KEY", raising=False)
    monkeypatch.delenv("KLING_SECRET_KEY", raising=False)
    assert not Settings().kling_configured


def test_public_dir_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path))
    assert Settings().public_dir == str(tmp_path)
    assert Settings(public_dir="/srv/public").public_dir == "/srv/public"
