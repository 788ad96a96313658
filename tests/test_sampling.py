"""Tests for composite sampling and block aggregation."""

import numpy as np
import pytest
from shapely.geometry import Point

from conftest import CRS, NX, NY, X0, Y0, make_dataset
from rangeland_biomass.core.composite import NO_COMPOSITE, PREDICTOR_BANDS
from rangeland_biomass.core.dpm_biomass import BIOMASS_COLUMN, SAMPLE_ID_COLUMN, add_biomass_column
from rangeland_biomass.core.sampling import extract_samples, resample_to_scale


@pytest.fixture
def biomass_points(observations):
    return add_biomass_column(observations)


class TestExtractSamples:

    def test_all_points_inside_coverage(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points)

        assert len(samples) == 10
        assert list(samples.columns) == [SAMPLE_ID_COLUMN] + PREDICTOR_BANDS + [BIOMASS_COLUMN, 'geometry']
        assert not samples[PREDICTOR_BANDS].isna().any().any()
        assert samples.crs.to_epsg() == 32735

    def test_values_come_from_containing_pixel(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points)

        for k, row in samples.iterrows():
            pixel = 2 * int(row[SAMPLE_ID_COLUMN]) + 1
            for band in PREDICTOR_BANDS:
                assert row[band] == pytest.approx(float(composite[band][pixel, pixel]))

    def test_point_off_centre_maps_to_containing_pixel(self, composite, biomass_points):
        moved = biomass_points.copy()
        moved.loc[0, 'geometry'] = Point(X0 + 19.9, Y0 - 10.1)
        samples = extract_samples(composite, moved)

        row = samples[samples[SAMPLE_ID_COLUMN] == 0].iloc[0]
        assert row['B8'] == pytest.approx(float(composite['B8'][1, 1]))

    def test_points_outside_raster_or_on_gaps_are_dropped(self, composite, biomass_points):
        gappy = composite.copy(deep=True)
        gappy['B11'].values[3, 3] = np.nan
        points = biomass_points.copy()
        points.loc[9, 'geometry'] = Point(X0 - 500, Y0 + 500)

        samples = extract_samples(gappy, points)

        assert len(samples) == 8
        assert set(samples[SAMPLE_ID_COLUMN]) == {0, 2, 3, 4, 5, 6, 7, 8}

    def test_targets_are_carried_unchanged(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points)
        expected = biomass_points.set_index(SAMPLE_ID_COLUMN)[BIOMASS_COLUMN]

        for _, row in samples.iterrows():
            assert row[BIOMASS_COLUMN] == pytest.approx(expected[row[SAMPLE_ID_COLUMN]])

    def test_reprojects_points(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points.to_crs("EPSG:4326"))
        assert len(samples) == 10

    def test_sentinel_raises(self, biomass_points):
        with pytest.raises(ValueError):
            extract_samples(NO_COMPOSITE, biomass_points)

    def test_missing_biomass_column(self, composite, observations):
        with pytest.raises(KeyError):
            extract_samples(composite, observations)

    def test_empty_observations(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points.iloc[0:0])
        assert len(samples) == 0


class TestResampleToScale:

    def test_same_scale_returns_input(self, composite):
        assert resample_to_scale(composite, 10) is composite

    def test_block_mean(self):
        values = np.arange(NY * NX, dtype=float).reshape(NY, NX)
        raster = make_dataset({'b': values})['b']

        coarse = resample_to_scale(raster, 50)

        assert coarse.shape == (NY // 5, NX // 5)
        assert float(coarse[0, 0]) == pytest.approx(values[:5, :5].mean())
        assert coarse.rio.crs.to_string() == CRS
        assert coarse.rio.resolution(recalc=True)[0] == pytest.approx(50)

    def test_missing_pixels_are_skipped(self):
        values = np.ones((NY, NX))
        values[:5, :5] = np.nan
        values[0, 5] = 5.0
        values[5:10, 0:5] = np.nan
        values[5, 0] = 3.0
        raster = make_dataset({'b': values})['b']

        coarse = resample_to_scale(raster, 50)

        assert np.isnan(float(coarse[0, 0]))
        assert float(coarse[1, 0]) == pytest.approx(3.0)
        assert float(coarse[0, 1]) == pytest.approx((5.0 + 24) / 25)

    def test_dataset_pixels_need_every_band(self):
        a = np.ones((NY, NX))
        b = np.full((NY, NX), 2.0)
        a[0, 0] = 100.0
        b[0, 0] = np.nan
        coarse = resample_to_scale(make_dataset({'a': a, 'b': b}), 50)

        assert float(coarse['a'][0, 0]) == pytest.approx(1.0)
        assert float(coarse['b'][0, 0]) == pytest.approx(2.0)

    def test_partial_edge_blocks_are_kept(self):
        values = np.arange(NY * NX, dtype=float).reshape(NY, NX)
        raster = make_dataset({'b': values})['b']

        coarse = resample_to_scale(raster, 30)

        assert coarse.shape == (7, 7)
        assert float(coarse[6, 6]) == pytest.approx(values[18:, 18:].mean())
        assert float(coarse[0, 6]) == pytest.approx(values[:3, 18:].mean())
        assert np.isfinite(coarse.values).all()
        transform = coarse.rio.transform()
        assert (transform.c, transform.f) == pytest.approx((X0, Y0))
        assert transform.a == pytest.approx(30)

    @pytest.mark.parametrize("scale", [5, 25])
    def test_invalid_scales(self, composite, scale):
        with pytest.raises(ValueError):
            resample_to_scale(composite, scale)

    def test_extraction_at_coarser_scale(self, composite, biomass_points):
        samples = extract_samples(composite, biomass_points, scale_m=20)
        coarse = resample_to_scale(composite, 20)

        first = samples[samples[SAMPLE_ID_COLUMN] == 0].iloc[0]
        assert first['B8'] == pytest.approx(float(coarse['B8'][0, 0]))
        assert len(samples) == 10
