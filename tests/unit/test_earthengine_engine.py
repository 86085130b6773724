"""Unit tests for EarthEngineEngine query construction (no network access)."""

from unittest.mock import MagicMock, patch

import pytest

from forest_height_ml.config.models import AreaOfInterestConfig, ExportConfig
from forest_height_ml.engine.earthengine import (
    EarthEngineEngine,
    EarthEngineRegion,
    initialize_earth_engine,
)
from forest_height_ml.errors import ConfigurationError, ExternalEngineError


class FakeEEException(Exception):
    """Stand-in for ee.EEException so except clauses can match it."""


@pytest.fixture
def mock_ee():
    with patch("forest_height_ml.engine.earthengine.ee") as ee_module:
        ee_module.EEException = FakeEEException
        yield ee_module


@pytest.fixture
def engine(mock_ee):
    return EarthEngineEngine(initialize=False)


class TestInitialize:
    """Tests for initialize_earth_engine()."""

    def test_initialize_with_project(self, mock_ee):
        initialize_earth_engine("my-project")
        mock_ee.Initialize.assert_called_once_with(project="my-project")

    def test_initialize_without_project(self, mock_ee):
        initialize_earth_engine()
        mock_ee.Initialize.assert_called_once_with()

    def test_initialize_failure(self, mock_ee):
        mock_ee.Initialize.side_effect = FakeEEException("Please authorize access")
        with pytest.raises(ExternalEngineError, match="Please authorize access") as excinfo:
            initialize_earth_engine()
        assert isinstance(excinfo.value.__cause__, FakeEEException)

    def test_engine_initializes_by_default(self, mock_ee):
        EarthEngineEngine(project="p")
        mock_ee.Initialize.assert_called_once_with(project="p")


class TestSamplingQueries:
    """Tests for the calls used by the sampling pipeline."""

    def test_presence_layer(self, engine):
        image = MagicMock()
        result = engine.presence_layer(image, band="height_m", name="forest")
        image.select.assert_called_once_with("height_m")
        image.select.return_value.mask.return_value.byte.return_value.rename.assert_called_once_with("forest")
        assert result is image.select.return_value.mask.return_value.byte.return_value.rename.return_value

    def test_stratified_sample_arguments(self, engine):
        image = MagicMock()
        engine.stratified_sample(image, "forest", [0, 1], [0, 5000], scale=10, crs="EPSG:6348", seed=4924)
        image.stratifiedSample.assert_called_once_with(
            numPoints=0,
            classBand="forest",
            classValues=[0, 1],
            classPoints=[0, 5000],
            scale=10,
            projection="EPSG:6348",
            seed=4924,
            dropNulls=True,
            geometries=True,
        )

    def test_annual_mosaic_int_year_is_end_exclusive(self, engine):
        collection = MagicMock()
        result = engine.annual_mosaic(collection, 2019)
        collection.filterDate.assert_called_once_with("2019-01-01", "2020-01-01")
        assert result is collection.filterDate.return_value.mosaic.return_value

    def test_annual_mosaic_server_side_year(self, engine, mock_ee):
        collection = MagicMock()
        year = MagicMock()
        engine.annual_mosaic(collection, year)
        mock_ee.Number.assert_called_once_with(year)
        mock_ee.Date.fromYMD.assert_any_call(mock_ee.Number.return_value, 1, 1)
        mock_ee.Date.fromYMD.assert_any_call(mock_ee.Number.return_value, 12, 31)
        mock_ee.Date.fromYMD.return_value.advance.assert_called_once_with(1, "day")

    def test_annual_mosaic_with_region_filters_bounds(self, engine):
        collection = MagicMock()
        region = EarthEngineRegion(features=MagicMock(), geometry=MagicMock())
        engine.annual_mosaic(collection, 2024, region=region)
        collection.filterDate.return_value.filterBounds.assert_called_once_with(region.geometry)

    def test_reduce_regions_mean(self, engine, mock_ee):
        image, table = MagicMock(), MagicMock()
        engine.reduce_regions_mean(image, table, scale=10, crs="EPSG:6348")
        image.reduceRegions.assert_called_once_with(
            collection=table,
            reducer=mock_ee.Reducer.mean.return_value,
            scale=10,
            crs="EPSG:6348",
        )

    def test_distinct_sorted(self, engine):
        table = MagicMock()
        result = engine.distinct_sorted(table, "year")
        table.aggregate_array.assert_called_once_with("year")
        assert result is table.aggregate_array.return_value.distinct.return_value.sort.return_value

    def test_map_and_flatten(self, engine, mock_ee):
        keys, func = MagicMock(), MagicMock()
        result = engine.map_and_flatten(keys, func, template=None)
        mock_ee.List.assert_called_once_with(keys)
        mock_ee.List.return_value.map.assert_called_once_with(func)
        assert result is mock_ee.FeatureCollection.return_value.flatten.return_value

    def test_add_null_columns_is_identity(self, engine):
        table = MagicMock()
        assert engine.add_null_columns(table, ["A00"]) is table

    def test_drop_nulls_uses_not_null_filter(self, engine, mock_ee):
        table = MagicMock()
        engine.drop_nulls(table, ("A00", "A01"))
        mock_ee.Filter.notNull.assert_called_once_with(["A00", "A01"])


class TestScoringQueries:
    """Tests for the calls used by the scoring pipeline."""

    def test_resolve_region_from_collection(self, engine, mock_ee):
        region = engine.resolve_region(
            AreaOfInterestConfig(collection="TIGER/2018/States", property="NAME", value="Maine")
        )
        mock_ee.FeatureCollection.assert_called_once_with("TIGER/2018/States")
        mock_ee.Filter.eq.assert_called_once_with("NAME", "Maine")
        features = mock_ee.FeatureCollection.return_value.filter.return_value
        assert region.features is features
        assert region.geometry is features.geometry.return_value

    def test_resolve_region_from_bbox(self, engine, mock_ee):
        engine.resolve_region(AreaOfInterestConfig(geometry="-70.5,44.0,-70.0,44.5"))
        geojson = mock_ee.Geometry.call_args[0][0]
        assert geojson["type"] == "Polygon"

    def test_clip_to_region_paints_mask(self, engine, mock_ee):
        image = MagicMock()
        region = EarthEngineRegion(features=MagicMock(), geometry=MagicMock())
        engine.clip_to_region(image, region)
        mock_ee.Image.assert_called_once_with(0)
        mock_ee.Image.return_value.paint.assert_called_once_with(region.features, 1)
        image.updateMask.assert_called_once_with(mock_ee.Image.return_value.paint.return_value)

    def test_load_landcover_filters_year(self, engine, mock_ee):
        engine.load_landcover("projects/sat-io/open-datasets/USGS/ANNUAL_NLCD/LANDCOVER", 2024)
        mock_ee.ImageCollection.return_value.filterDate.assert_called_once_with("2024-01-01", "2025-01-01")

    def test_remap_classes(self, engine):
        image = MagicMock()
        engine.remap_classes(image, (41, 42, 43))
        image.remap.assert_called_once_with([41, 42, 43], [1, 1, 1], 0)

    def test_multiply_constants(self, engine, mock_ee):
        image = MagicMock()
        engine.multiply_constants(image, (2, -1))
        mock_ee.Image.constant.assert_called_once_with([2.0, -1.0])

    def test_cast(self, engine):
        image = MagicMock()
        assert engine.cast(image, "int16") is image.toInt16.return_value
        assert engine.cast(image, "uint8") is image.toUint8.return_value

    def test_cast_unknown_dtype(self, engine):
        with pytest.raises(ConfigurationError, match="output_dtype"):
            engine.cast(MagicMock(), "complex64")


class TestRequestsAndExports:
    """Tests for getInfo calls, exports and error translation."""

    def test_band_names_calls_get_info(self, engine):
        image = MagicMock()
        image.bandNames.return_value.getInfo.return_value = ["A00", "A01"]
        assert engine.band_names(image) == ["A00", "A01"]

    def test_engine_error_is_wrapped(self, engine):
        image = MagicMock()
        image.bandNames.return_value.getInfo.side_effect = FakeEEException("Image.load: asset not found")
        with pytest.raises(ExternalEngineError, match="Image.load: asset not found") as excinfo:
            engine.band_names(image)
        assert isinstance(excinfo.value.__cause__, FakeEEException)

    def test_export_raster_to_asset(self, engine, mock_ee):
        image = MagicMock()
        region = EarthEngineRegion(features=MagicMock(), geometry=MagicMock())
        export = ExportConfig(destination="asset", asset_id="users/me/height", description="Export-Height-Map")
        task = engine.export_raster(image, export, region, scale=10, crs="EPSG:6348")

        to_asset = mock_ee.batch.Export.image.toAsset
        to_asset.assert_called_once_with(
            assetId="users/me/height",
            image=image,
            description="Export-Height-Map",
            scale=10,
            crs="EPSG:6348",
            maxPixels=1e13,
            region=region.geometry,
        )
        assert task is to_asset.return_value
        task.start.assert_called_once_with()

    def test_export_table_to_drive(self, engine, mock_ee):
        table = MagicMock()
        export = ExportConfig(
            destination="drive", description="Height-Dataset-toDrive", file_name_prefix="forest_ht_dataset"
        )
        engine.export_table(table, export, columns=["height_m", "year"])
        mock_ee.batch.Export.table.toDrive.assert_called_once_with(
            collection=table,
            description="Height-Dataset-toDrive",
            fileNamePrefix="forest_ht_dataset",
            fileFormat="CSV",
            selectors=["height_m", "year"],
        )

    def test_export_metadata_is_set_on_table(self, engine, mock_ee):
        table = MagicMock()
        engine.export_table(table, ExportConfig(destination="drive"), metadata={"seed": 1})
        table.set.assert_called_once_with({"seed": 1})
        kwargs = mock_ee.batch.Export.table.toDrive.call_args.kwargs
        assert kwargs["collection"] is table.set.return_value

    def test_export_to_file_is_rejected(self, engine, tmp_path):
        with pytest.raises(ConfigurationError, match="not supported by the earthengine engine"):
            engine.export_table(MagicMock(), ExportConfig(destination="file", path=tmp_path / "x.csv"))

    def test_export_start_failure_is_wrapped(self, engine, mock_ee):
        mock_ee.batch.Export.image.toAsset.return_value.start.side_effect = FakeEEException("quota")
        export = ExportConfig(destination="asset", asset_id="users/me/height")
        with pytest.raises(ExternalEngineError, match="quota"):
            engine.export_raster(MagicMock(), export, None, scale=10, crs="EPSG:6348")
