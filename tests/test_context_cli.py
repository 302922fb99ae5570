"""Reading context and the command-line entry point."""

import json
from datetime import date

import pytest

from manse.boundaries import BirthInput
from manse.chart import compute_chart, traditional_luck_policy
from manse.generate_context import annual_year, generate_reading_context, load_chart
from manse.run import main


@pytest.fixture
def sample_chart(default_table, settings):
    birth = BirthInput(1990, 3, 15, 10, 30, timezone="Asia/Seoul", gender="male")
    return compute_chart(birth, default_table, settings,
                         luck_policy=traditional_luck_policy("male"), today=date(2026, 10, 19))


class TestReadingContext:
    def test_annual_year_respects_li_chun(self, default_table):
        assert annual_year(date(2026, 2, 3), default_table) == 2025
        assert annual_year(date(2026, 2, 4), default_table) == 2026
        assert annual_year(date(2026, 2, 3)) == 2026

    def test_annual_year_outside_table(self, default_table):
        assert annual_year(date(2150, 1, 10), default_table) == 2150

    def test_before_li_chun(self, sample_chart, default_table):
        context = generate_reading_context(sample_chart, "2026-02-01", default_table)
        assert context["annual"]["year"] == 2025
        assert context["annual"]["pillar"]["combined"] == "Yi Si"
        assert context["annual"]["stem_relation"]["key"] == "seven_killings"

    def test_after_li_chun(self, sample_chart, default_table):
        context = generate_reading_context(sample_chart, date(2026, 3, 1), default_table)
        assert context["annual"]["pillar"]["combined"] == "Bing Wu"
        assert context["annual"]["stem_relation"]["key"] == "direct_resource"
        assert context["annual"]["branch_relation"]["key"] == "indirect_resource"
        assert context["current_luck_decade"]["number"] == 3
        assert context["current_luck_decade"]["years_remaining"] == 0
        assert context["time_sensitive"] is False

    def test_luck_decade_follows_annual_year(self, sample_chart, default_table):
        # 2027-01-20 is before Li Chun 2027, still the last year of decade 3.
        context = generate_reading_context(sample_chart, "2027-01-20", default_table)
        assert context["annual"]["year"] == 2026
        assert context["current_luck_decade"]["number"] == 3
        assert context["current_luck_decade"]["years_remaining"] == 0

    def test_chart_without_luck_cycle(self, default_table, settings):
        chart = compute_chart(BirthInput(1990, 3, 15), default_table, settings)
        context = generate_reading_context(chart, "2026-03-01")
        assert context["current_luck_decade"] is None

    def test_load_chart_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_chart(tmp_path / "nobody.json")


class TestCli:
    def test_chart_to_stdout(self, capsys, monkeypatch):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        code = main(["chart", "--birth-date", "1990-03-15", "--birth-time", "10:30",
                     "--timezone", "Asia/Seoul", "--gender", "male"])
        assert code == 0
        chart = json.loads(capsys.readouterr().out)
        assert chart["pillars"]["hour"]["combined"] == "Ji Si"
        assert chart["luck_cycle"]["direction"] == "forward"

    def test_chart_then_context(self, capsys, monkeypatch, tmp_path):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        chart_path = tmp_path / "chart.json"
        assert main(["chart", "--birth-date", "1990-03-15", "--luck-start-age", "4",
                     "--luck-direction", "backward", "--output", str(chart_path)]) == 0
        saved = json.loads(chart_path.read_text(encoding="utf-8"))
        assert saved["pillars"]["hour"] is None
        assert saved["luck_cycle"]["start_age"] == 4
        capsys.readouterr()

        assert main(["context", "--chart", str(chart_path), "--date", "2026-03-01"]) == 0
        context = json.loads(capsys.readouterr().out)
        assert context["annual"]["pillar"]["combined"] == "Bing Wu"

    def test_engine_error_exit_code(self, capsys, monkeypatch):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        assert main(["chart", "--birth-date", "1850-06-01", "--birth-time", "12:00"]) == 1
        assert "No solar-term data for 1850" in capsys.readouterr().err

    def test_day_cutoff_option(self, capsys, monkeypatch):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        main(["chart", "--birth-date", "1990-03-15", "--birth-time", "23:10", "--day-cutoff", "23:00"])
        chart = json.loads(capsys.readouterr().out)
        assert chart["input"]["day_rolled_over"] is True

    def test_unknown_timezone_exit_code(self, capsys, monkeypatch):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        assert main(["chart", "--birth-date", "1990-03-15", "--birth-time", "10:30",
                     "--timezone", "Foo/Bar"]) == 1
        assert "Unknown timezone 'Foo/Bar'" in capsys.readouterr().err

    def test_midnight_cutoff_rejected(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["chart", "--birth-date", "2024-06-15", "--birth-time", "10:00",
                  "--day-cutoff", "00:00"])
        assert excinfo.value.code == 2
        assert "23:00 and 23:59" in capsys.readouterr().err

    def test_default_table_covers_common_births(self, capsys, monkeypatch):
        monkeypatch.delenv("MANSE_SOLAR_TERMS_PATH", raising=False)
        assert main(["chart", "--birth-date", "1991-05-10"]) == 0
        chart = json.loads(capsys.readouterr().out)
        assert chart["pillars"]["year"]["combined"] == "Xin Wei"
