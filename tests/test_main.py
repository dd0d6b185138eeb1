import json

from rollexpr.__main__ import main


class TestMain:
    def test_roll(self, capsys) -> None:
        assert main(["--maximize", "4d6", "+", "2"]) == 0
        out = capsys.readouterr().out
        assert out == "Input: 4d6 + 2\n=> 24 + 2\nResult: 26\n"

    def test_deterministic_roll(self, capsys) -> None:
        assert main(["2 * 3"]) == 0
        assert capsys.readouterr().out == "Input: 2 * 3\nResult: 6\n"

    def test_json(self, capsys) -> None:
        assert main(["--minimize", "--json", "2d6"]) == 0
        record = json.loads(capsys.readouterr().out)
        assert record["total"] == 2
        assert record["evaluated"] is True

    def test_data(self, capsys, tmp_path) -> None:
        data = tmp_path / "data.yaml"
        data.write_text("bonus: 3\n")
        assert main(["--maximize", "--data", str(data), "1d4 + @bonus"]) == 0
        assert capsys.readouterr().out.endswith("Result: 7\n")

    def test_bad_input(self, capsys) -> None:
        assert main(["1d6 +"]) == 1
        assert capsys.readouterr().err.startswith("Error in input: ")

    def test_missing_settings(self, capsys, tmp_path) -> None:
        assert main(["--settings", str(tmp_path / "missing.yaml"), "1"]) == 1
        assert capsys.readouterr().err.startswith("Error in settings: ")

    def test_no_formula(self, capsys) -> None:
        assert main([]) == 1
        assert "no formula" in capsys.readouterr().err

    def test_function_list(self, capsys) -> None:
        assert main(["--functions"]) == 0
        out = capsys.readouterr().out
        assert "floor" in out
        assert "round down" in out

    def test_function_help(self, capsys) -> None:
        assert main(["--functions", "floor", "nope"]) == 0
        out = capsys.readouterr().out
        assert out.startswith("floor(<x>)")
        assert "error: function nope not found." in out
