"""Smoke tests for the sampling and prediction CLI entry points.

Both entry points run end to end on the local engine against the GeoTIFF
fixtures; no Earth Engine access is needed.
"""

import pandas as pd
import pytest
import rasterio


class TestSampleHeightsCliSmoke:
    """Smoke tests for sample_heights.py CLI."""

    def test_module_imports(self):
        """The sample_heights module should be importable."""
        from forest_height_ml import sample_heights
        assert hasattr(sample_heights, "main")
        assert hasattr(sample_heights, "parse_args")

    def test_parser_requires_height_source(self, monkeypatch):
        """Without --config the parser should require --height-source."""
        from forest_height_ml.sample_heights import parse_args

        monkeypatch.delenv("HEIGHT_SOURCE", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["--sample-size", "10"])

    def test_parser_defers_to_config(self, tmp_path):
        """With --config the height source may come from YAML."""
        from forest_height_ml.sample_heights import parse_args

        args = parse_args(["--config", str(tmp_path / "sampling.yaml")])
        assert args.config == tmp_path / "sampling.yaml"

    def test_main_writes_csv(self, height_raster_path, embedding_dir, tmp_path):
        """A local run should write the sampled dataset."""
        from forest_height_ml.sample_heights import main

        output = tmp_path / "out" / "forest_ht_dataset.csv"
        main([
            "--engine", "local",
            "--height-source", str(height_raster_path),
            "--embedding-source", str(embedding_dir),
            "--sample-size", "20",
            "--output", str(output),
            "--log-level", "WARNING",
        ])

        frame = pd.read_csv(output)
        assert len(frame) == 20
        assert {"height_m", "year", "A00", "A63"} <= set(frame.columns)

    def test_main_with_yaml_config(self, height_raster_path, embedding_dir, tmp_path):
        """A YAML config plus a CLI override should run end to end."""
        from forest_height_ml.sample_heights import main

        config_path = tmp_path / "sampling.yaml"
        config_path.write_text(
            "engine: local\n"
            f"height_source: {height_raster_path}\n"
            "sample_size: 50\n"
            "embedding:\n"
            f"  source: {embedding_dir}\n"
        )
        output = tmp_path / "dataset.csv"
        main(["--config", str(config_path), "--sample-size", "8", "--output", str(output)])
        assert len(pd.read_csv(output)) == 8

    @pytest.mark.parametrize(
        "yaml_value, flag, expected",
        [
            ("true", "--keep-unmatched", False),
            ("false", "--drop-unmatched", True),
            ("true", None, True),
        ],
    )
    def test_unmatched_flags_override_yaml(
        self, height_raster_path, tmp_path, monkeypatch, yaml_value, flag, expected
    ):
        """Either unmatched-row flag overrides the YAML value; no flag keeps it."""
        from forest_height_ml.config.cli import build_sampling_config
        from forest_height_ml.sample_heights import parse_args

        monkeypatch.delenv("DROP_UNMATCHED", raising=False)
        config_path = tmp_path / "sampling.yaml"
        config_path.write_text(
            "engine: local\n"
            f"height_source: {height_raster_path}\n"
            f"drop_unmatched: {yaml_value}\n"
        )
        argv = ["--config", str(config_path)] + ([flag] if flag else [])
        config = build_sampling_config(parse_args(argv))
        assert config.drop_unmatched is expected

    def test_unmatched_env_default_overrides_yaml(self, height_raster_path, tmp_path, monkeypatch):
        """DROP_UNMATCHED applies only when set, like any other flag default."""
        from forest_height_ml.config.cli import build_sampling_config
        from forest_height_ml.sample_heights import parse_args

        config_path = tmp_path / "sampling.yaml"
        config_path.write_text(
            "engine: local\n"
            f"height_source: {height_raster_path}\n"
            "drop_unmatched: true\n"
        )
        monkeypatch.setenv("DROP_UNMATCHED", "false")
        config = build_sampling_config(parse_args(["--config", str(config_path)]))
        assert config.drop_unmatched is False

        monkeypatch.delenv("DROP_UNMATCHED")
        args = parse_args(["--engine", "local", "--height-source", str(height_raster_path)])
        config = build_sampling_config(args)
        assert config.drop_unmatched is False

    def test_main_exits_on_missing_raster(self, embedding_dir, tmp_path):
        """A missing height raster is a configuration error (exit code 1)."""
        from forest_height_ml.sample_heights import main

        with pytest.raises(SystemExit) as excinfo:
            main([
                "--engine", "local",
                "--height-source", str(tmp_path / "missing.tif"),
                "--embedding-source", str(embedding_dir),
            ])
        assert excinfo.value.code == 1


class TestPredictHeightsCliSmoke:
    """Smoke tests for predict_heights.py CLI."""

    def test_module_imports(self):
        """The predict_heights module should be importable."""
        from forest_height_ml import predict_heights
        assert hasattr(predict_heights, "main")
        assert hasattr(predict_heights, "parse_args")

    def test_parser_requires_model(self, monkeypatch):
        """Without --config the parser should require --model-preset."""
        from forest_height_ml.predict_heights import parse_args

        monkeypatch.delenv("MODEL_PRESET", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["--aoi", "-70.5,44.0,-70.0,44.5"])

    def test_parser_requires_aoi(self, monkeypatch):
        """Without --config the parser should require an area of interest."""
        from forest_height_ml.predict_heights import parse_args

        monkeypatch.delenv("AOI", raising=False)
        monkeypatch.delenv("AOI_COLLECTION", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["--model-preset", "maine_linear_2024"])

    def test_parser_rejects_unknown_preset(self):
        """Presets are restricted to the shipped models."""
        from forest_height_ml.predict_heights import parse_args

        with pytest.raises(SystemExit):
            parse_args(["--model-preset", "nope", "--aoi", "-70.5,44.0,-70.0,44.5"])

    def test_main_writes_raster(self, embedding_dir, left_half_aoi, tmp_path):
        """A local run should write the predicted height map."""
        from forest_height_ml.predict_heights import main

        output = tmp_path / "height_2018.tif"
        main([
            "--engine", "local",
            "--model-preset", "maine_linear_2024",
            "--aoi", left_half_aoi,
            "--embedding-source", str(embedding_dir),
            "--year", "2018",
            "--output-dtype", "int16",
            "--output", str(output),
            "--log-level", "WARNING",
        ])

        with rasterio.open(output) as src:
            assert src.count == 1
            assert src.dtypes[0] == "int16"
            assert src.descriptions == ("predicted_height_m",)

    def test_main_exits_when_year_has_no_tiles(self, embedding_dir, left_half_aoi, tmp_path):
        """A year without embedding tiles fails with exit code 1."""
        from forest_height_ml.predict_heights import main

        with pytest.raises(SystemExit) as excinfo:
            main([
                "--engine", "local",
                "--model-preset", "maine_linear_2024",
                "--aoi", left_half_aoi,
                "--embedding-source", str(embedding_dir),
                "--year", "2019",
                "--output", str(tmp_path / "height.tif"),
            ])
        assert excinfo.value.code == 1
