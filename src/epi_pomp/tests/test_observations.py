import numpy as np
import pandas as pd
import pytest

from epi_pomp.datasets.observations import (
    as_observations,
    load_dataset,
    load_observations,
)


def test_load_bundled_bsflu():
    obs = load_dataset("bsflu")
    assert list(obs.columns) == ["time", "reports"]
    assert len(obs) == 14
    assert obs["time"].tolist() == list(np.arange(1.0, 15.0))
    assert obs["reports"].iloc[0] == 3
    assert obs["reports"].max() == 298


def test_load_observations_from_csv(tmp_path):
    path = tmp_path / "weekly.csv"
    pd.DataFrame({"week": [1, 2, 3], "cases": [0, 4, 2]}).to_csv(path, index=False)

    obs = load_observations(path, time_col="week", count_col="cases")
    assert obs["reports"].tolist() == [0, 4, 2]

    with pytest.raises(ValueError):
        load_observations(path)
    with pytest.raises(FileNotFoundError):
        load_observations(tmp_path / "missing.csv")


def test_as_observations_validates():
    times, counts = as_observations([(1, 3), (2, 5)])
    assert times.dtype == float
    assert counts.tolist() == [3, 5]

    with pytest.raises(ValueError):
        as_observations([(1, 3), (1, 5)])
    with pytest.raises(ValueError):
        as_observations([(1, -3)])
    with pytest.raises(ValueError):
        as_observations([(1, 2.5)])
    with pytest.raises(ValueError):
        as_observations([])
    with pytest.raises(ValueError):
        load_dataset("consett")
