import pytest

from rollexpr.config import DEFAULT_SETTINGS_FILE, EngineConfig
from rollexpr.dice import Coin, Die, FateDie
from rollexpr.errors import InvalidArgument


class TestEngineConfig:
    def test_defaults(self) -> None:
        config = EngineConfig()
        assert config.max_dice == 999
        assert len(config.math_functions) == 16
        assert config.dice_kinds == {"d": Die, "c": Coin, "f": FateDie}

    def test_default_settings_file(self) -> None:
        config = EngineConfig.from_yaml(DEFAULT_SETTINGS_FILE)
        assert config.max_dice == 999
        assert len(config.math_functions) == 16

    def test_from_settings(self) -> None:
        config = EngineConfig.from_settings({"max_dice": 10, "math_functions": ["floor"]})
        assert config.max_dice == 10
        assert list(config.math_functions) == ["floor"]

    def test_empty_settings(self) -> None:
        assert EngineConfig.from_settings(None).max_dice == 999

    def test_seed(self) -> None:
        a = EngineConfig.from_settings({"seed": 3})
        b = EngineConfig.from_settings({"seed": 3})
        assert [a.random_source() for _ in range(5)] == [b.random_source() for _ in range(5)]

    def test_from_yaml(self, tmp_path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("max_dice: 5\nmath_functions: [max, min]\n")
        config = EngineConfig.from_yaml(str(path))
        assert config.max_dice == 5
        assert sorted(config.math_functions) == ["max", "min"]

    @pytest.mark.parametrize("max_dice", [-1, 2.5, "10"])
    def test_invalid_max_dice(self, max_dice) -> None:
        with pytest.raises(InvalidArgument):
            EngineConfig(max_dice=max_dice)

    def test_d_is_required(self) -> None:
        with pytest.raises(InvalidArgument):
            EngineConfig(dice_kinds={"c": Coin})

    def test_denomination(self) -> None:
        config = EngineConfig()
        assert config.denomination("6") is Die
        assert config.denomination("20") is Die
        assert config.denomination("F") is FateDie
        assert config.denomination("c") is Coin
        assert config.denomination("x") is None

    def test_math_function(self) -> None:
        config = EngineConfig()
        assert config.math_function("max")(1, 2) == 2
        with pytest.raises(InvalidArgument):
            config.math_function("nope")

    def test_function_help(self) -> None:
        def double(x):
            """double(<x>) is twice x."""
            return 2 * x

        floor = EngineConfig().math_function("floor")
        config = EngineConfig(math_functions={"floor": floor, "double": double})
        assert config.function_help("floor").startswith("floor(<x>)")
        assert config.function_help("double") == "double(<x>) is twice x."
