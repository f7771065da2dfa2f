import json
from datetime import datetime, timezone

from click.testing import CliRunner

from signal_engine.config import Settings
from signal_engine.main import cli
from signal_engine.monitor import QuotaTracker
from signal_engine.types import LiveCheckResult, MonitorRefresh


def _use_settings(monkeypatch: object, settings: Settings) -> None:
    monkeypatch.setattr("signal_engine.main.get_settings", lambda: settings)


def test_cli_parse_smoke() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["parse", "ES long entry at 5900"])
    assert result.exit_code == 0
    assert '"symbol": "ES"' in result.output
    assert '"action": "ENTER"' in result.output


def test_cli_ingest_then_query(monkeypatch: object, tmp_path: object) -> None:
    _use_settings(monkeypatch, Settings(data_dir=tmp_path))
    messages = tmp_path / "chat.jsonl"
    rows = [
        {"text": "ES long entry at 5900", "timestamp": "2026-03-02T14:30:00Z", "source_id": "chan-1"},
        {"text": "ES stopped out at 5890", "timestamp": "2026-03-02T14:37:00Z", "source_id": "chan-1"},
    ]
    messages.write_text("\n".join(json.dumps(r) for r in rows) + "\nnot json\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(cli, ["ingest", str(messages)])
    assert result.exit_code == 0
    assert "Closed:   1" in result.output

    result = runner.invoke(cli, ["trades", "--format", "csv", "--symbol", "es"])
    assert result.exit_code == 0
    assert "id,channel_id,channel_name,symbol" in result.output
    assert "LOSS" in result.output

    result = runner.invoke(cli, ["trades", "--stats-only"])
    assert result.exit_code == 0
    assert '"losses": 1' in result.output

    result = runner.invoke(cli, ["trades", "--start", "yesterday"])
    assert result.exit_code != 0


def test_cli_monitor_requires_api_key(monkeypatch: object, tmp_path: object) -> None:
    _use_settings(monkeypatch, Settings(data_dir=tmp_path, youtube_api_key=""))
    result = CliRunner().invoke(cli, ["monitor"])
    assert result.exit_code == 1


def test_cli_monitor_once(monkeypatch: object, tmp_path: object) -> None:
    class _FakeMonitor:
        quota = QuotaTracker()

        @classmethod
        def from_settings(cls, settings: Settings) -> "_FakeMonitor":
            return cls()

        async def refresh(self, channels: object) -> MonitorRefresh:
            now = datetime.now(timezone.utc)
            live = LiveCheckResult(
                channel_id="alpha",
                name="Alpha",
                handle="@alpha",
                is_live=True,
                checked_at=now,
                stream_id="v1",
                title="Open drive",
                viewer_count=321,
            )
            return MonitorRefresh(channels=[live], live_count=1, quota_used=1, quota_remaining=9999, polled_at=now)

    _use_settings(monkeypatch, Settings(data_dir=tmp_path, youtube_api_key="k"))
    monkeypatch.setattr("signal_engine.main.ChannelMonitor", _FakeMonitor)

    result = CliRunner().invoke(cli, ["monitor"])
    assert result.exit_code == 0
    assert "[LIVE] Alpha - 321 viewers" in result.output
    assert list((tmp_path / "journal").glob("*.jsonl"))


def test_cli_status_and_ocr(monkeypatch: object, tmp_path: object) -> None:
    _use_settings(monkeypatch, Settings(data_dir=tmp_path))
    screen = tmp_path / "screen.txt"
    screen.write_text("Tradovate\nES Long 1 5900 5905\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "Polling strategy" in result.output

    result = runner.invoke(cli, ["ocr", str(screen), "--confidence", "92"])
    assert result.exit_code == 0
    assert '"platform": "tradovate"' in result.output

    result = runner.invoke(cli, ["ocr", str(screen), "--source-id", "desk-1"])
    assert result.exit_code == 0
    assert '"trades_opened": 1' in result.output
