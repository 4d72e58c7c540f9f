from __future__ import annotations

from pathlib import Path

import pytest

from jobrelay.core import cli
from jobrelay.dedupe.service import DedupeService
from jobrelay.storage.kv_store import KeyValueStore
from jobrelay.storage.repository import JobRepository


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(cli, "setup_logging", lambda log_dir: None)
    path = tmp_path / "config.yaml"
    path.write_text(
        f"storage:\n  db_path: {tmp_path / 'cli.db'}\n  log_dir: {tmp_path / 'logs'}\n"
        "sources:\n  enabled: [eoi, reliefweb]\n",
        encoding="utf-8",
    )
    return path


def db(config_path: Path) -> str:
    return str(config_path.parent / "cli.db")


def test_missing_config_exits_with_error(tmp_path: Path, capsys) -> None:
    assert cli.main(["--config", str(tmp_path / "missing.yaml"), "runs"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_sources_lists_and_toggles(config_path: Path, capsys) -> None:
    assert cli.main(["--config", str(config_path), "sources"]) == 0
    out = capsys.readouterr().out
    assert "id=eoi" in out and "id=yldf" in out

    assert cli.main(["--config", str(config_path), "sources", "disable", "eoi"]) == 0
    assert cli.main(["--config", str(config_path), "sources", "enable", "qtb"]) == 0
    assert cli.main(["--config", str(config_path), "sources", "enable", "nowhere"]) == 1

    repo = JobRepository(db(config_path))
    assert repo.enabled_source_ids() == {"reliefweb", "qtb"}
    repo.close()


def test_kv_commands(config_path: Path, capsys) -> None:
    store = KeyValueStore(db(config_path))
    DedupeService(store).mark_published("eoi-12", "Network Engineer", "Acme")
    store.close()
    base = ["--config", str(config_path), "kv"]

    assert cli.main(base + ["list", "--prefix", "eoi-"]) == 0
    assert "eoi-12  Network Engineer | Acme" in capsys.readouterr().out

    assert cli.main(base + ["show", "eoi-12"]) == 0
    assert '"title": "Network Engineer"' in capsys.readouterr().out
    assert cli.main(base + ["show", "eoi-99"]) == 1

    assert cli.main(base + ["delete-dedup", "network engineer", "ACME"]) == 0
    assert cli.main(base + ["delete-job", "eoi-12"]) == 0
    assert cli.main(base + ["delete-job", "eoi-12"]) == 1

    capsys.readouterr()
    assert cli.main(base + ["clear"]) == 0
    assert '"job": 0' in capsys.readouterr().out


def test_runs_and_jobs_on_empty_database(config_path: Path, capsys) -> None:
    assert cli.main(["--config", str(config_path), "runs"]) == 0
    assert cli.main(["--config", str(config_path), "jobs", "--status", "posted"]) == 0
    assert "Totals: {}" in capsys.readouterr().out


def test_kv_search_matches_title_or_company(config_path: Path, capsys) -> None:
    store = KeyValueStore(db(config_path))
    dedupe = DedupeService(store)
    dedupe.mark_published("eoi-12", "Network Engineer", "Acme")
    dedupe.mark_published("qtb-3", "Teller", "QTB Bank")
    store.close()
    base = ["--config", str(config_path), "kv", "search"]

    assert cli.main(base + ["engineer"]) == 0
    out = capsys.readouterr().out
    assert "eoi-12" in out and "qtb-3" not in out

    assert cli.main(base + ["bank"]) == 0
    assert "qtb-3  Teller | QTB Bank" in capsys.readouterr().out

    assert cli.main(base + ["pilot"]) == 0
    assert "No posted jobs match: pilot" in capsys.readouterr().out


def test_prompt_source_overrides(config_path: Path, capsys) -> None:
    base = ["--config", str(config_path), "prompt"]

    assert cli.main(base + ["list"]) == 0
    out = capsys.readouterr().out
    assert "eoi  howtoapply=on" in out
    assert "yldf  howtoapply=off" in out

    assert cli.main(base + ["set-hint", "eoi", "Banking", "roles", "only"]) == 0
    assert cli.main(base + ["set-howtoapply", "eoi", "off"]) == 0
    assert cli.main(base + ["set-apply", "eoi", "راسلونا"]) == 0
    capsys.readouterr()

    assert cli.main(base + ["show", "eoi"]) == 0
    out = capsys.readouterr().out
    assert "eoi [override]  howtoapply=off  hint=Banking roles only  fallback=راسلونا" in out

    repo = JobRepository(db(config_path))
    assert repo.prompt_overrides() == {
        "eoi": {"source_hint": "Banking roles only", "include_how_to_apply": False, "apply_fallback": "راسلونا"}
    }
    repo.close()

    assert cli.main(base + ["reset", "nowhere"]) == 1
    assert cli.main(base + ["reset", "eoi"]) == 0
    capsys.readouterr()
    assert cli.main(base + ["list"]) == 0
    assert "[override]" not in capsys.readouterr().out


def test_prompt_template_overrides(config_path: Path, capsys) -> None:
    base = ["--config", str(config_path), "prompt"]

    assert cli.main(base + ["set-template", "arabic", "--text", "no placeholder"]) == 1
    assert cli.main(base + ["set-template", "arabic", "--text", "Custom {{description}}"]) == 0
    template_file = config_path.parent / "english.txt"
    template_file.write_text("Translate: {{description}}", encoding="utf-8")
    assert cli.main(base + ["set-template", "english", "--file", str(template_file)]) == 0

    repo = JobRepository(db(config_path))
    assert repo.settings_with_prefix("prompt_template:") == {
        "arabic": "Custom {{description}}",
        "english": "Translate: {{description}}",
    }
    repo.close()

    capsys.readouterr()
    assert cli.main(base + ["show-template", "arabic"]) == 0
    assert "arabic template (override):\nCustom {{description}}" in capsys.readouterr().out

    assert cli.main(base + ["reset-template", "arabic"]) == 0
    assert cli.main(base + ["show-template", "arabic"]) == 0
    assert "arabic template (built-in):" in capsys.readouterr().out
