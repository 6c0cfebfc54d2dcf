import pytest

from epi_pomp.inference.transforms import from_estimation_scale, to_estimation_scale

PARAMS = {"Beta": 2.0, "mu_IR": 1.0, "rho": 0.9, "N": 763}


def test_transform_round_trip():
    est = to_estimation_scale(PARAMS, log=("Beta", "mu_IR"), logit_names=("rho",))
    assert est["mu_IR"] == pytest.approx(0.0)
    assert est["N"] == 763

    back = from_estimation_scale(est, log=("Beta", "mu_IR"), logit_names=("rho",))
    for k, v in PARAMS.items():
        assert back[k] == pytest.approx(v)


def test_transform_rejects_out_of_domain():
    with pytest.raises(ValueError):
        to_estimation_scale({**PARAMS, "Beta": 0.0}, log=("Beta",))
    with pytest.raises(ValueError):
        to_estimation_scale({**PARAMS, "rho": 1.0}, logit_names=("rho",))
