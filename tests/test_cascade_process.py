"""
Test end-to-end gene cascade processing on synthetic data.
"""

import numpy as np
import pandas as pd
import pytest

from sccascade import process_gene_cascade, FitType, InvalidParameter
from sccascade.synthetic import generate_synthetic_cascade, gene_profile


@pytest.fixture(scope="module")
def dataset():
    return generate_synthetic_cascade(n_cells=600, n_background=40, random_state=7)


@pytest.fixture(scope="module")
def cascade(dataset):
    return process_gene_cascade(
        dataset['expression'],
        dataset['pseudotime'],
        genes=dataset['genes'],
        background_genes=dataset['background_genes'],
        moving_window=3,
        cells_per_window=20
    )


class TestCascadeStructure:
    """Test the shape and consistency of the result bundle."""

    def test_windows_and_tables(self, cascade, dataset):
        """Tables should have one column per window and one row per gene."""
        n_windows = cascade.windows.n_windows

        assert n_windows == 30 - 3 + 1
        assert cascade.mean_expression.shape == (len(dataset['genes']), n_windows)
        assert cascade.scaled_expression_bg.shape == (40, n_windows)
        assert len(cascade.pt_info) == n_windows
        assert np.allclose(cascade.pt_info['mean'], cascade.window_times)

    def test_scaled_max_is_one(self, cascade):
        """Every scaled gene should peak at exactly 1."""
        assert np.all(cascade.scaled_expression.max(axis=1) == 1.0)
        assert np.all(cascade.scaled_expression_bg.max(axis=1) == 1.0)

    def test_noise_positive(self, cascade):
        """Background noise should be a small positive number."""
        assert 0 < cascade.sd_bg < 0.5

    def test_timing_matches_fits(self, cascade, dataset):
        """Timing table should mirror the fit records."""
        assert list(cascade.timing.index) == dataset['genes']
        for gene, fit in cascade.impulse_fits.items():
            assert cascade.timing.loc[gene, 'time_on'] == pytest.approx(fit.time_on, nan_ok=True)
            assert cascade.timing.loc[gene, 'time_off'] == pytest.approx(fit.time_off, nan_ok=True)

    def test_config_recorded(self, cascade):
        """Effective configuration should be recorded."""
        assert cascade.config['moving_window'] == 3
        assert cascade.config['cells_per_window'] == 20
        assert cascade.config['n_cells'] == 600
        assert cascade.config['min_effect'] == pytest.approx(0.05 + cascade.sd_bg)

    def test_immutable(self, cascade):
        """The result bundle cannot be reassigned."""
        with pytest.raises(AttributeError):
            cascade.sd_bg = 0.0


class TestCascadeTiming:
    """Test recovered onset/offset times.

    Onsets sit below the 10% level of the log-scale curve, so they precede the
    simulated transition midpoints, and offsets follow them.
    """

    def test_rising_genes(self, cascade):
        """Rising genes turn on before their switch midpoint and never turn off."""
        early = cascade.impulse_fits['rise_early']
        late = cascade.impulse_fits['rise_late']

        assert early.type in (FitType.SINGLE, FitType.DOUBLE)
        assert 0.1 < early.time_on < 0.35
        assert 0.4 < late.time_on < 0.65
        assert early.time_on < late.time_on
        assert np.isposinf(early.time_off)
        assert np.isposinf(late.time_off)

    def test_falling_gene(self, cascade):
        """A falling gene has no onset but turns off."""
        fit = cascade.impulse_fits['fall']

        assert np.isnan(fit.time_on)
        assert 0.45 < fit.time_off < 0.75

    def test_pulse_gene(self, cascade):
        """A transient gene turns on and then off."""
        fit = cascade.impulse_fits['pulse']

        assert fit.type == FitType.DOUBLE
        assert 0.1 < fit.time_on < 0.35
        assert 0.65 < fit.time_off < 0.92

    def test_gene_order(self, cascade):
        """Heatmap order: on from start, then by onset."""
        order = cascade.gene_order()

        assert order.index('fall') < order.index('rise_early')
        assert order.index('rise_early') < order.index('rise_late')
        assert order.index('pulse') < order.index('rise_late')
        assert list(cascade.ordered_scaled_expression().index) == order

    def test_fitted_curves(self, cascade):
        """Fitted curves should be evaluated on the window axis."""
        curves = cascade.fitted_curves()

        assert curves.shape == cascade.scaled_expression.shape
        assert np.all(np.isfinite(curves.loc['pulse']))

    def test_fit_table(self, cascade):
        """Fit table has one row per gene with type and timing."""
        table = cascade.fit_table()

        assert list(table.index) == cascade.genes
        assert {'type', 'a', 'b', 'b1', 'b2', 'h0', 'h1', 'h2', 't1', 't2', 'time_on', 'time_off'} <= set(table.columns)
        assert table.loc['pulse', 'type'] == int(FitType.DOUBLE)

    def test_fit_summary(self, cascade):
        """No gene of the synthetic cascade should fail."""
        types = cascade.fit_types()

        assert cascade.failed_genes == []
        assert list(types.index) == cascade.genes
        assert types['pulse'] == FitType.DOUBLE


class TestCascadeOptions:
    """Test input variants and configuration handling."""

    def test_sampled_background_and_threads(self, dataset):
        """Background sampled from non-variable genes; threads give same timing."""
        expression = dataset['expression']
        kwargs = dict(
            genes=['rise_early', 'pulse'],
            variable_genes=dataset['genes'],
            n_background=20,
            cells_per_window=30,
            moving_window=2
        )
        serial = process_gene_cascade(expression, dataset['pseudotime'], **kwargs)
        threaded = process_gene_cascade(expression, dataset['pseudotime'], n_jobs=4, **kwargs)

        assert serial.config['n_background'] == 20
        assert not set(serial.scaled_expression_bg.index) & set(dataset['genes'])
        pd.testing.assert_frame_equal(serial.timing, threaded.timing)

    def test_cell_subset_and_nan_pseudotime(self, dataset):
        """Cells with NaN pseudotime are ignored by default."""
        pt = dataset['pseudotime'].copy()
        pt.iloc[:50] = np.nan
        result = process_gene_cascade(
            dataset['expression'], pt,
            genes=['flat'],
            background_genes=dataset['background_genes'],
            cells_per_window=25,
            verbose=True,
            verbose_genes=True
        )

        assert result.config['n_cells'] == 550
        assert result.windows.n_base == 22

    def test_dataframe_pseudotime(self, dataset):
        """Pseudotime given as a cells x axes DataFrame."""
        pt = pd.DataFrame({'dpt': dataset['pseudotime'], 'reverse': 1 - dataset['pseudotime']})
        result = process_gene_cascade(
            dataset['expression'], pt,
            genes=['rise_early'],
            background_genes=dataset['background_genes'],
            pseudotime_key='reverse',
            cells_per_window=20
        )

        assert np.isnan(result.impulse_fits['rise_early'].time_on)
        assert np.isfinite(result.impulse_fits['rise_early'].time_off)

    def test_invalid_window_configuration(self, dataset):
        """A moving window wider than the available buckets is fatal."""
        with pytest.raises(InvalidParameter):
            process_gene_cascade(
                dataset['expression'], dataset['pseudotime'],
                genes=['flat'],
                background_genes=dataset['background_genes'],
                cells_per_window=300,
                moving_window=3
            )

    def test_background_required_for_callable(self, dataset):
        """Background genes cannot be sampled from a lookup function."""
        expression = dataset['expression']
        with pytest.raises(ValueError):
            process_gene_cascade(
                lambda g, c: expression.loc[g, c],
                dataset['pseudotime'],
                genes=['flat']
            )


class TestSyntheticProfiles:
    """Test synthetic gene profiles."""

    def test_profile_shapes(self):
        """Profiles should switch in the expected direction."""
        t = np.array([0.0, 0.5, 1.0])

        assert gene_profile(t, 'rise', time_on=0.5)[2] > gene_profile(t, 'rise', time_on=0.5)[0]
        assert gene_profile(t, 'fall', time_off=0.5)[2] < gene_profile(t, 'fall', time_off=0.5)[0]
        pulse = gene_profile(t, 'pulse', time_on=0.25, time_off=0.75)
        assert pulse[1] > pulse[0] and pulse[1] > pulse[2]

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            gene_profile(np.zeros(3), 'wiggle')


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
