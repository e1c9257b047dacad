"""
Test pseudotime moving window construction.
"""

import numpy as np
import pandas as pd
import pytest

from sccascade.exceptions import InvalidParameter
from sccascade.windows import (
    WindowSummary,
    base_bucket_bounds,
    pseudotime_moving_window,
    window_pseudotime_info,
    resolve_pseudotime
)


class TestWindowCounts:
    """Test the number and size of windows."""

    def test_uniform_example(self):
        """100 cells, 10 per window, moving window 3 -> 8 windows of 30 cells."""
        pt = np.linspace(0, 1, 100)
        windows = pseudotime_moving_window(None, pt, moving_window=3, cells_per_window=10)

        assert windows.n_base == 10
        assert windows.n_windows == 8
        assert all(len(c) == 30 for c in windows.cells)
        assert np.all(np.diff(windows.times) > 0)
        assert windows.times[0] == pytest.approx(np.mean(pt[:30]))
        assert windows.times[-1] == pytest.approx(np.mean(pt[70:]))

    @pytest.mark.parametrize("n_cells,cpw,mw", [(97, 10, 3), (55, 7, 1), (13, 4, 2), (200, 33, 5)])
    def test_window_count_formula(self, n_cells, cpw, mw):
        """Number of windows is n_base - moving_window + 1."""
        rng = np.random.default_rng(0)
        pt = rng.uniform(0, 1, n_cells)
        windows = pseudotime_moving_window(None, pt, moving_window=mw, cells_per_window=cpw)

        n_base = int(np.round(n_cells / cpw))
        assert windows.n_base == n_base
        assert windows.n_windows == n_base - mw + 1

    def test_moving_window_too_large(self):
        """More buckets requested than available should fail."""
        pt = np.linspace(0, 1, 20)
        with pytest.raises(InvalidParameter):
            pseudotime_moving_window(None, pt, moving_window=3, cells_per_window=10)

    def test_invalid_parameters(self):
        """Non-positive configuration should fail immediately."""
        pt = np.linspace(0, 1, 50)
        with pytest.raises(InvalidParameter):
            pseudotime_moving_window(None, pt, moving_window=0, cells_per_window=10)
        with pytest.raises(InvalidParameter):
            pseudotime_moving_window(None, pt, moving_window=1, cells_per_window=0)
        with pytest.raises(InvalidParameter):
            pseudotime_moving_window([], np.array([]), moving_window=1, cells_per_window=5)

    def test_nonfinite_pseudotime(self):
        """NaN pseudotime cannot be ordered."""
        pt = np.array([0.1, np.nan, 0.3, 0.4])
        with pytest.raises(InvalidParameter):
            pseudotime_moving_window(None, pt, moving_window=1, cells_per_window=1)

    def test_few_cells_single_bucket(self):
        """Fewer cells than cells_per_window still gives one bucket."""
        pt = np.array([0.3, 0.1, 0.2])
        windows = pseudotime_moving_window(None, pt, moving_window=1, cells_per_window=10)

        assert windows.n_base == 1
        assert list(windows.cells[0]) == [1, 2, 0]


class TestBaseBuckets:
    """Test base bucket partitioning."""

    @pytest.mark.parametrize("n_cells,n_base", [(100, 10), (101, 10), (7, 3), (1000, 33), (5, 5)])
    def test_bucket_sizes_differ_by_at_most_one(self, n_cells, n_base):
        """Base buckets should be near-equal in size."""
        starts, ends = base_bucket_bounds(n_cells, n_base)
        sizes = ends - starts

        assert len(sizes) == n_base
        assert sizes.max() - sizes.min() <= 1
        assert sizes.sum() == n_cells
        assert starts[0] == 0 and ends[-1] == n_cells

    def test_every_cell_in_one_bucket(self):
        """Each cell should appear in exactly one base bucket."""
        rng = np.random.default_rng(1)
        cells = [f"c{i}" for i in range(87)]
        pt = rng.uniform(0, 1, 87)
        windows = pseudotime_moving_window(cells, pt, moving_window=2, cells_per_window=9)

        assigned = np.concatenate(windows.base_buckets)
        assert len(assigned) == len(cells)
        assert set(assigned) == set(cells)

    def test_windows_overlap(self):
        """Adjacent windows should share a base bucket."""
        pt = np.linspace(0, 1, 60)
        windows = pseudotime_moving_window(None, pt, moving_window=3, cells_per_window=10)

        shared = set(windows.cells[0]) & set(windows.cells[1])
        assert shared == set(windows.base_buckets[1]) | set(windows.base_buckets[2])

    def test_stable_tie_break(self):
        """Cells with equal pseudotime keep their input order."""
        cells = ['a', 'b', 'c', 'd']
        pt = np.array([0.5, 0.5, 0.1, 0.5])
        windows = pseudotime_moving_window(cells, pt, moving_window=1, cells_per_window=1)

        assert list(np.concatenate(windows.base_buckets)) == ['c', 'a', 'b', 'd']


class TestWindowSummary:
    """Test summary pseudotime of windows."""

    @pytest.mark.parametrize("name_by", ["mean", "min", "max"])
    def test_summary_within_range(self, name_by):
        """Summary pseudotime should lie within the window's pseudotime range."""
        rng = np.random.default_rng(2)
        pt = rng.exponential(1.0, 150)
        windows = pseudotime_moving_window(None, pt, moving_window=3, cells_per_window=10, name_by=name_by)

        for t, p in zip(windows.times, windows.pseudotime):
            assert p.min() <= t <= p.max()
        assert np.all(np.diff(windows.times) >= 0)

    def test_summary_statistics(self):
        """min/max summaries should match window extremes."""
        pt = np.linspace(0, 1, 40)
        w_min = pseudotime_moving_window(None, pt, 2, 10, name_by=WindowSummary.MIN)
        w_max = pseudotime_moving_window(None, pt, 2, 10, name_by="max")

        assert np.allclose(w_min.times, [p.min() for p in w_min.pseudotime])
        assert np.allclose(w_max.times, [p.max() for p in w_max.pseudotime])

    def test_unknown_summary(self):
        """Only mean, min and max are supported."""
        with pytest.raises(ValueError):
            pseudotime_moving_window(None, np.linspace(0, 1, 20), 1, 5, name_by="median")

    def test_labels_rounded_times_unrounded(self):
        """Labels are rounded to 3 decimals; times keep full precision."""
        pt = np.linspace(0, 1, 30) + 1e-5
        windows = pseudotime_moving_window(None, pt, 1, 10)

        assert np.allclose(windows.labels, np.round(windows.times, 3))
        assert not np.allclose(windows.labels, windows.times, atol=1e-7, rtol=0)

    def test_pt_info(self):
        """pt_info should report mean/min/max/width of each window."""
        pt = np.linspace(0, 1, 50)
        windows = pseudotime_moving_window(None, pt, 2, 10)
        info = window_pseudotime_info(windows)

        assert list(info.columns) == ['mean', 'min', 'max', 'width']
        assert len(info) == windows.n_windows
        assert np.allclose(info['width'], info['max'] - info['min'])
        assert np.allclose(info['mean'], windows.times)


class TestPseudotimeInput:
    """Test pseudotime lookup from pandas objects."""

    def test_series_lookup(self):
        """Series input should be looked up by cell ID."""
        pt = pd.Series([0.4, 0.1, 0.9, 0.2], index=['w', 'x', 'y', 'z'])
        cells, values = resolve_pseudotime(pt, ['z', 'y'])

        assert list(cells) == ['z', 'y']
        assert np.allclose(values, [0.2, 0.9])

    def test_dataframe_axis(self):
        """DataFrame input should use the named pseudotime axis."""
        pt = pd.DataFrame({'dpt': [0.1, 0.2, 0.3], 'other': [3, 2, 1]}, index=['a', 'b', 'c'])
        windows = pseudotime_moving_window(None, pt, 1, 1, pseudotime_key='other')

        assert list(np.concatenate(windows.cells)) == ['c', 'b', 'a']

    def test_dataframe_requires_key(self):
        """Multi-column DataFrame without a key is ambiguous."""
        pt = pd.DataFrame({'dpt': [0.1, 0.2], 'other': [3, 2]})
        with pytest.raises(ValueError):
            resolve_pseudotime(pt)

    def test_length_mismatch(self):
        """Array input must align with cells."""
        with pytest.raises(ValueError):
            resolve_pseudotime(np.array([0.1, 0.2]), ['a', 'b', 'c'])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
