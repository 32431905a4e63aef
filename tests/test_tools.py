"""
Tests for the offline helpers under tools/.
"""
from surfacemap.coordinator import AdmissionCoordinator
from surfacemap.decision_log import DecisionLog
from tools import analyze_log, smoke


class TestAnalyzeLog:
    def test_summary(self, tmp_path, capsys, scoped_config):
        path = str(tmp_path / "d.tsv")
        core = AdmissionCoordinator(scoped_config)
        with DecisionLog(path) as log:
            for raw in ("/item?id=1", "/item?id=2", "function", "http://evil.example/"):
                log.write(raw, core.admit(raw, "http://t.example/"))
            log.write_stats(core.stats())

        analyze_log.analyze(path)
        out = capsys.readouterr().out
        assert "Total decisions: 4" in out
        assert "Admitted: 2 (50.0%)" in out
        assert "low quality: 1" in out
        assert "out of scope: 1" in out
        assert "http://t.example/item?id=" in out
        assert "coordinator.allowed: 2" in out


class TestSmoke:
    def test_smoke_script_passes(self, capsys):
        smoke.main()
        assert "Smoke tests passed" in capsys.readouterr().out
