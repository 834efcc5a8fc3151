import numpy as np
import pandas as pd
import pytest

from flightlab.modeling.augment import (
    add_predictions,
    add_residuals,
    gather_predictions,
    gather_residuals,
    predictor,
)
from flightlab.modeling.errors import EvaluationError, SpecificationError
from flightlab.modeling.formula_models import fit_ols


def test_add_predictions_end_to_end(wday_table, wday_model):
    out = add_predictions(wday_table, {"pred": wday_model})
    assert out["pred"].tolist() == [10, 20, 30]
    assert list(out.columns) == ["wday", "n", "pred"]


def test_add_residuals_end_to_end(wday_table, wday_model):
    out = add_residuals(wday_table, {"resid": wday_model})
    assert out["resid"].tolist() == [2, -2, 3]


def test_inputs_are_not_mutated(wday_table, wday_model):
    before = wday_table.copy()
    add_predictions(wday_table, {"pred": wday_model})
    add_residuals(wday_table, {"resid": wday_model})
    pd.testing.assert_frame_equal(wday_table, before)


def test_columns_and_row_count(daily):
    models = {"a": fit_ols("n ~ wday", daily), "n": fit_ols("n ~ wday * term", daily)}
    out = add_predictions(daily, models)
    assert len(out) == len(daily)
    assert list(out.columns) == list(daily.columns) + ["a"]
    # Existing column is overwritten in place.
    assert not np.allclose(out["n"], daily["n"])


def test_residuals_match_observed_minus_predicted(daily):
    model = fit_ols("n ~ wday * term", daily)
    out = add_residuals(daily, {"resid": model})
    expected = daily["n"].to_numpy(dtype=float) - np.asarray(model.predict(daily), dtype=float)
    np.testing.assert_allclose(out["resid"], expected)
    np.testing.assert_allclose(out["resid"], model.results.resid)


def test_predictions_are_idempotent(daily):
    model = fit_ols("n ~ wday", daily)
    once = add_predictions(daily, {"pred": model})
    twice = add_predictions(once, {"pred": model})
    np.testing.assert_array_equal(once["pred"], twice["pred"])


def test_duplicate_names_last_wins(wday_table, make_lookup):
    a = make_lookup({"Mon": 1, "Tue": 2, "Wed": 3})
    b = make_lookup({"Mon": 7, "Tue": 8, "Wed": 9})
    out = add_predictions(wday_table, [("p", a), ("p", b)])
    assert out["p"].tolist() == [7, 8, 9]
    assert list(out.columns).count("p") == 1


def test_missing_predictor_raises_evaluation_error(daily):
    model = fit_ols("n ~ wday", daily)
    table = daily.drop(columns=["wday"])
    with pytest.raises(EvaluationError):
        add_predictions(table, {"pred": model})


def test_failure_does_not_leak_partial_columns(wday_table, wday_model, make_lookup):
    broken = make_lookup({"Mon": 1})
    with pytest.raises(EvaluationError):
        add_predictions(wday_table, [("ok", wday_model), ("bad", broken)])
    assert "ok" not in wday_table.columns


def test_wrong_prediction_length_is_an_evaluation_error(wday_table, make_lookup):
    class Short(make_lookup):
        def predict(self, table):
            return [1.0]

    with pytest.raises(EvaluationError):
        add_predictions(wday_table, {"p": Short({})})


def test_rows_dropped_by_formula_come_back_as_nan(daily):
    model = fit_ols("n ~ wday + day", daily)
    table = daily.copy()
    table.loc[3, "day"] = np.nan
    out = add_predictions(table, {"pred": model})
    assert np.isnan(out.loc[3, "pred"])
    assert out["pred"].notna().sum() == len(table) - 1


def test_predictor_returns_formula_lhs(daily, wday_model):
    assert predictor(fit_ols("n ~ wday", daily)) == "n"
    assert predictor(wday_model) == "n"


def test_predictor_accepts_raw_statsmodels_results(daily):
    import statsmodels.formula.api as smf

    results = smf.ols("n ~ wday", data=daily).fit()
    assert predictor(results) == "n"
    out = add_residuals(daily, {"resid": results})
    np.testing.assert_allclose(out["resid"], results.resid)


def test_predictor_without_specification():
    class Bare:
        def predict(self, table):
            return np.zeros(len(table))

    with pytest.raises(SpecificationError):
        predictor(Bare())


def test_predictions_only_need_predict(wday_table):
    class Bare:
        def predict(self, table):
            return np.ones(len(table))

    out = add_predictions(wday_table, {"one": Bare()})
    assert out["one"].tolist() == [1.0, 1.0, 1.0]
    with pytest.raises(SpecificationError):
        add_residuals(wday_table, {"one": Bare()})


def test_residuals_missing_response_column(wday_table, wday_model):
    with pytest.raises(SpecificationError):
        add_residuals(wday_table.drop(columns=["n"]), {"resid": wday_model})


def test_residuals_with_expression_response(wday_table, make_lookup):
    model = make_lookup({"Mon": 0.0, "Tue": 0.0, "Wed": 0.0}, formula="np.log(n) ~ wday")
    out = add_residuals(wday_table, {"resid": model})
    np.testing.assert_allclose(out["resid"], np.log([12, 18, 33]))


def test_bad_named_models():
    table = pd.DataFrame({"x": [1]})
    with pytest.raises(TypeError):
        add_predictions(table, [("only-name",)])
    with pytest.raises(TypeError):
        add_predictions(table, {1: object()})


def test_gather_predictions_stacks_models(wday_table, wday_model, make_lookup):
    other = make_lookup({"Mon": 0, "Tue": 0, "Wed": 0})
    out = gather_predictions(wday_table, {"a": wday_model, "b": other})
    assert len(out) == 2 * len(wday_table)
    assert list(out.columns) == ["model", "wday", "n", "pred"]
    assert out["model"].tolist() == ["a"] * 3 + ["b"] * 3
    assert out["pred"].tolist() == [10, 20, 30, 0, 0, 0]


def test_gather_residuals(wday_table, wday_model):
    out = gather_residuals(wday_table, {"a": wday_model}, var="m", value="r")
    assert out["r"].tolist() == [2, -2, 3]
    assert out["m"].unique().tolist() == ["a"]


def test_gather_rejects_existing_output_columns(wday_table, wday_model):
    with pytest.raises(ValueError):
        gather_predictions(wday_table, {"a": wday_model}, value="n")


def test_residuals_of_raw_results_use_callers_imports(daily):
    import numpy
    import statsmodels.formula.api as smf

    results = smf.ols("numpy.log(n) ~ wday", data=daily).fit()
    out = add_residuals(daily, {"r": results})
    np.testing.assert_allclose(out["r"], results.resid)


def test_residuals_late_failure_returns_nothing(wday_table, wday_model):
    class Bare:
        def predict(self, table):
            return np.zeros(len(table))

    before = wday_table.copy()
    result = None
    with pytest.raises(SpecificationError):
        result = add_residuals(wday_table, [("ok", wday_model), ("bad", Bare())])
    assert result is None
    pd.testing.assert_frame_equal(wday_table, before)

    with pytest.raises(SpecificationError):
        result = gather_residuals(wday_table, [("ok", wday_model), ("bad", Bare())])
    assert result is None
    pd.testing.assert_frame_equal(wday_table, before)


def test_pairs_may_be_lists(wday_table, wday_model):
    out = add_predictions(wday_table, [["p", wday_model]])
    assert out["p"].tolist() == [10, 20, 30]
    with pytest.raises(TypeError):
        add_predictions(wday_table, ["pm"])
