from pathlib import Path

import pytest

from nutriscan.config import AppConfig
from nutriscan.rules.categorization import SubstringPolicy

CONFIG_YML = Path(__file__).resolve().parents[1] / "data" / "config.yml"


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = AppConfig.load(tmp_path / "absent.yml")

    assert [p.name for p in config.providers] == ["locallm", "lmstudio", "glhf"]
    assert config.timeout_s == 45.0
    assert config.max_ai_attempts == 3
    assert config.substring_policy is SubstringPolicy.FIRST_INSERTED


def test_shipped_config_builds_providers_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GLHF_API_KEY", "token")

    providers = AppConfig.load(CONFIG_YML).build_providers()

    assert [p.name for p in providers] == ["locallm", "lmstudio", "glhf"]
    assert providers[0].api_key is None
    assert providers[-1].api_key == "token"
    assert all(p.timeout_s == 45.0 for p in providers)


def test_config_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yml"
    path.write_text(
        "\n".join(
            [
                "categories:",
                "  substring_policy: longest_keyword",
                "ai:",
                "  timeout_s: 5",
                "  max_attempts: 1",
                "  providers:",
                "    - name: only",
                "      url: http://localhost:9/v1/chat/completions",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NUTRISCAN_LOG_LEVEL", "DEBUG")

    config = AppConfig.load(path)

    assert config.substring_policy is SubstringPolicy.LONGEST_KEYWORD
    assert config.timeout_s == 5.0
    assert config.max_ai_attempts == 1
    assert [p.name for p in config.providers] == ["only"]
    assert config.log_level == "DEBUG"


def test_config_rejects_zero_attempts(tmp_path: Path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("ai:\n  max_attempts: 0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="max_attempts"):
        AppConfig.load(path)
