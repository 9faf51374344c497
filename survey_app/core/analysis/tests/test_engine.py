"""
Survey Analysis Engine — Comprehensive Test Suite
===================================================
Tests all components: CSV parser, schema inference, descriptive statistics,
weighted estimation, visualization binning, insight rules, orchestrator.

Run: pytest survey_app/ -v
Run with coverage: pytest survey_app/ --cov=survey_app --cov-report=term-missing
"""

import math
import pytest


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

SCENARIO_CSV = "age,city\n25,NYC\n,LA\n30,\n"


def make_csv(headers, rows):
    """Build CSV text from a header list and row lists."""
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join("" if v is None else str(v) for v in row))
    return "\n".join(lines) + "\n"


def make_dataset(csv_text, **overrides):
    from survey_app.core.analysis import AnalysisThresholds, SurveyAnalyzer
    return SurveyAnalyzer(AnalysisThresholds().override(overrides)).load(csv_text)


def make_grouped_csv():
    return make_csv(
        ["region", "score", "weight"],
        [
            ["A", 1, 1], ["B", 2, 2], ["C", 3, 1],
            ["A", 3, 1], ["B", 4, 2], ["C", 5, 1],
        ],
    )


# ═══════════════════════════════════════════════════════════════
# 1. CSV PARSER TESTS
# ═══════════════════════════════════════════════════════════════

class TestCsvParser:
    """Tests for csv_parser.py"""

    def test_headers_and_rows(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv("a,b\n1,2\n3,4\n")
        assert table.headers == ["a", "b"]
        assert table.rows == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]
        assert table.total_rows == 2
        assert table.total_columns == 2

    def test_quoted_comma_and_escaped_quote(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv('name,comment\n"Smith, J","said ""hi"""\n')
        assert table.rows[0]["name"] == "Smith, J"
        assert table.rows[0]["comment"] == 'said "hi"'

    def test_newline_inside_quotes(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv('id,text\n1,"line one\nline two"\n2,plain\n')
        assert table.total_rows == 2
        assert table.rows[0]["text"] == "line one\nline two"
        assert table.rows[1]["text"] == "plain"

    def test_bom_and_line_endings(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv("\ufeffa,b\r\n1,2\r3,4\r\n\r\n\n")
        assert table.headers == ["a", "b"]
        assert table.total_rows == 2
        assert table.rows[1] == {"a": "3", "b": "4"}

    def test_unquoted_fields_are_trimmed(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv(' a , b \n  1 ,  x y  \n')
        assert table.headers == ["a", "b"]
        assert table.rows[0] == {"a": "1", "b": "x y"}

    def test_quoted_whitespace_is_kept(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv('a,b\n" padded ",1\n')
        assert table.rows[0]["a"] == " padded "

    def test_ragged_rows_are_lenient(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv("a,b,c\n1\n1,2,3,4,5\n")
        assert table.rows[0] == {"a": "1", "b": "", "c": ""}
        assert table.rows[1] == {"a": "1", "b": "2", "c": "3"}

    def test_header_only_is_rejected(self):
        from survey_app.core.analysis import ParseError, parse_csv
        with pytest.raises(ParseError):
            parse_csv("a,b\n")

    def test_empty_text_is_rejected(self):
        from survey_app.core.analysis import ParseError, parse_csv
        with pytest.raises(ParseError):
            parse_csv("")
        with pytest.raises(ParseError):
            parse_csv("\ufeff\r\n\n")

    def test_unterminated_quote_is_rejected(self):
        from survey_app.core.analysis import ParseError, parse_csv
        with pytest.raises(ParseError) as exc:
            parse_csv('a,b\n1,"never closed\n2,3\n')
        assert exc.value.line == 2
        assert exc.value.code == "parse_error"

    def test_duplicate_header_is_rejected(self):
        from survey_app.core.analysis import ParseError, parse_csv
        with pytest.raises(ParseError):
            parse_csv("a,a\n1,2\n")

    def test_blank_header_gets_positional_name(self):
        from survey_app.core.analysis import parse_csv
        table = parse_csv("a,\n1,2\n")
        assert table.headers == ["a", "Column 2"]


# ═══════════════════════════════════════════════════════════════
# 2. SCHEMA INFERENCE TESTS
# ═══════════════════════════════════════════════════════════════

class TestSchemaInference:
    """Tests for schema.py"""

    def test_parse_number(self):
        from survey_app.core.analysis import parse_number
        assert parse_number("42") == 42.0
        assert parse_number(" -3.5 ") == -3.5
        assert parse_number("1e3") == 1000.0
        assert parse_number(".5") == 0.5
        assert parse_number("") is None
        assert parse_number("abc") is None
        assert parse_number("Infinity") is None
        assert parse_number("nan") is None
        assert parse_number("1_000") is None

    def test_numeric_above_threshold(self):
        from survey_app.core.analysis import ColumnKind, infer_kind
        assert infer_kind(["1", "2", "3", "4", "5", "x"]) == ColumnKind.NUMERIC

    def test_fraction_equal_to_threshold_is_categorical(self):
        from survey_app.core.analysis import ColumnKind, infer_kind
        # 4 of 5 present values are numeric: 0.8 is not > 0.8
        assert infer_kind(["1", "2", "3", "4", "x"]) == ColumnKind.CATEGORICAL

    def test_threshold_is_configurable(self):
        from survey_app.core.analysis import AnalysisThresholds, ColumnKind, infer_kind
        loose = AnalysisThresholds().override({"numeric_fraction_threshold": 0.5})
        assert infer_kind(["1", "2", "3", "4", "x"], loose) == ColumnKind.NUMERIC

    def test_missing_values_do_not_count(self):
        from survey_app.core.analysis import ColumnKind, infer_kind
        assert infer_kind(["1", "", "  ", "2"]) == ColumnKind.NUMERIC

    def test_no_present_values_is_categorical(self):
        from survey_app.core.analysis import ColumnKind, infer_kind
        assert infer_kind(["", " ", ""]) == ColumnKind.CATEGORICAL

    def test_scenario_columns(self):
        from survey_app.core.analysis import ColumnKind
        ds = make_dataset(SCENARIO_CSV)
        assert ds.total_rows == 3
        assert ds.total_columns == 2
        assert ds.column("age").kind == ColumnKind.NUMERIC
        assert ds.column("city").kind == ColumnKind.CATEGORICAL
        assert ds.column("age").missing_count == 1
        assert ds.missing_cells == 2

    def test_type_override(self):
        from survey_app.core.analysis import ColumnKind, SurveyAnalyzer
        ds = SurveyAnalyzer().load("zip,n\n10001,1\n94105,2\n", {"zip": "categorical"})
        assert ds.column("zip").kind == ColumnKind.CATEGORICAL
        assert ds.column("n").kind == ColumnKind.NUMERIC

    def test_type_override_unknown_column(self):
        from survey_app.core.analysis import SurveyAnalyzer, UnknownColumn
        with pytest.raises(UnknownColumn):
            SurveyAnalyzer().load("a\n1\n", {"missing": "numeric"})

    def test_unknown_column_lookup(self):
        from survey_app.core.analysis import UnknownColumn
        ds = make_dataset(SCENARIO_CSV)
        with pytest.raises(UnknownColumn) as exc:
            ds.column("income", role="weight")
        assert exc.value.role == "weight"


# ═══════════════════════════════════════════════════════════════
# 3. DESCRIPTIVE STATISTICS TESTS
# ═══════════════════════════════════════════════════════════════

class TestDescriptiveStatistics:
    """Tests for descriptive_stats.py"""

    def test_percentile_interpolation(self):
        from survey_app.core.analysis.descriptive_stats import percentile
        values = [1.0, 2.0, 3.0, 4.0]
        assert percentile(values, 0.5) == pytest.approx(2.5)
        assert percentile(values, 0.25) == pytest.approx(1.75)
        assert percentile(values, 0.75) == pytest.approx(3.25)
        assert percentile([7.0], 0.5) == 7.0

    def test_population_std(self):
        from survey_app.core.analysis.descriptive_stats import population_std
        assert population_std([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)

    def test_skewness_and_kurtosis_formulas(self):
        from survey_app.core.analysis.descriptive_stats import kurtosis, skewness
        assert skewness([1, 2, 3, 4, 5]) == pytest.approx(0.0)
        assert kurtosis([1, 2, 3, 4, 5]) == pytest.approx(2.625)
        assert skewness([1, 1, 1, 1, 10]) == pytest.approx(3.125)
        assert kurtosis([1, 1, 1, 1, 10]) == pytest.approx(12.3125)

    def test_moments_need_enough_points(self):
        from survey_app.core.analysis import InsufficientData
        from survey_app.core.analysis.descriptive_stats import kurtosis, skewness
        with pytest.raises(InsufficientData) as exc:
            skewness([1.0, 2.0])
        assert exc.value.required == 3
        with pytest.raises(InsufficientData):
            kurtosis([1.0, 2.0, 3.0])

    def test_scenario_numeric(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        ds = make_dataset(SCENARIO_CSV)
        a = DescriptiveStatisticsEngine().analyze(ds)["age"]
        assert a.count == 2
        assert a.missing == 1
        assert a.mean == pytest.approx(27.5)
        assert a.min == 25
        assert a.max == 30
        assert a.skewness is None
        assert a.kurtosis is None
        assert len(a.notes) == 2

    def test_scenario_categorical(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        ds = make_dataset(SCENARIO_CSV)
        a = DescriptiveStatisticsEngine().analyze(ds)["city"]
        assert a.count == 2
        assert a.missing == 1
        assert a.unique_count == 2
        assert a.mode == "NYC"
        assert a.mode_count == 1

    def test_count_plus_missing_is_total(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        csv_text = make_csv(
            ["n", "c"],
            [[1, "a"], [None, "b"], [3, None], [4, "a"], ["oops", "c"], [6, "a"]],
        )
        ds = make_dataset(csv_text)
        for a in DescriptiveStatisticsEngine().analyze(ds).values():
            assert a.count + a.missing == ds.total_rows

    def test_order_statistics_are_ordered(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        csv_text = make_csv(["x"], [[v] for v in [9, 1, 5, 3, 3, 8, 2, 7, 100]])
        a = DescriptiveStatisticsEngine().analyze(make_dataset(csv_text))["x"]
        assert a.min <= a.q1 <= a.median <= a.q3 <= a.max
        assert a.median == 5

    def test_constant_column_has_no_nan(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        csv_text = make_csv(["x"], [[5]] * 6)
        a = DescriptiveStatisticsEngine().analyze(make_dataset(csv_text))["x"]
        assert a.std == 0
        assert a.skewness is None
        assert a.kurtosis is None
        for value in a.to_dict().values():
            if isinstance(value, float):
                assert math.isfinite(value)

    def test_categorical_counts_are_consistent(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        csv_text = make_csv(["c"], [[v] for v in "abacbdaefgg"] + [[None]])
        a = DescriptiveStatisticsEngine().analyze(make_dataset(csv_text))["c"]
        assert sum(a.value_counts.values()) == a.count
        assert a.unique_count == len(a.value_counts)
        assert a.count == 11
        assert a.missing == 1

    def test_top_values_ranked_with_first_seen_ties(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine
        csv_text = make_csv(["c"], [[v] for v in "zyxxyzwvu"])
        a = DescriptiveStatisticsEngine().analyze(make_dataset(csv_text))["c"]
        assert a.top_values == (("z", 2), ("y", 2), ("x", 2), ("w", 1), ("v", 1))
        assert a.mode == "z"

    def test_top_values_limit_is_configurable(self):
        from survey_app.core.analysis import AnalysisThresholds, DescriptiveStatisticsEngine
        csv_text = make_csv(["c"], [[v] for v in "abcdefg"])
        engine = DescriptiveStatisticsEngine(AnalysisThresholds(top_values_limit=3))
        a = engine.analyze(make_dataset(csv_text))["c"]
        assert len(a.top_values) == 3

    def test_forced_numeric_without_numbers(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine, SurveyAnalyzer
        ds = SurveyAnalyzer().load("c\nx\ny\n", {"c": "numeric"})
        a = DescriptiveStatisticsEngine().analyze(ds)["c"]
        assert a.count == 0
        assert a.missing == 2
        assert a.mean is None


# ═══════════════════════════════════════════════════════════════
# 4. WEIGHTED PARAMETER ESTIMATOR TESTS
# ═══════════════════════════════════════════════════════════════

class TestWeightedEstimator:
    """Tests for estimator.py"""

    def _estimate(self, csv_text, **request):
        from survey_app.core.analysis import EstimationRequest, WeightedParameterEstimator
        ds = make_dataset(csv_text)
        return WeightedParameterEstimator().estimate(ds, EstimationRequest(**request))

    def test_grouped_mean_without_weights(self):
        result = self._estimate(
            make_grouped_csv(),
            estimating_column="score", aggregation="Mean", grouping_column="region",
        )
        assert [g.group for g in result.groups] == ["A", "B", "C"]
        for g in result.groups:
            assert g.weighted_n == g.sample_size == 2
        a = result.groups[0]
        assert a.estimate == pytest.approx(2.0)
        assert a.margin_of_error == pytest.approx(1.96 * math.sqrt(1.0 / 2.0))

    def test_weighted_mean_all_ones_is_plain_mean(self):
        from survey_app.core.analysis.estimator import weighted_mean
        values = [3.0, 7.5, 1.25, 9.0, 4.0]
        assert weighted_mean(values, [1.0] * len(values)) == pytest.approx(sum(values) / len(values))

    def test_weighted_mean_and_margin(self):
        result = self._estimate(
            "x,w\n10,1\n20,3\n",
            estimating_column="x", aggregation="mean", weight_column="w",
        )
        g = result.groups[0]
        assert g.group == "Overall"
        assert g.estimate == pytest.approx(17.5)
        variance = (1 * 7.5 ** 2 + 3 * 2.5 ** 2) / 4
        effective_n = 16 / 10
        assert g.margin_of_error == pytest.approx(1.96 * math.sqrt(variance / effective_n))
        assert g.weighted_n == pytest.approx(4.0)

    def test_weights_pair_with_their_own_rows(self):
        result = self._estimate(
            "x,w\n,5\n10,1\n20,3\n",
            estimating_column="x", aggregation="mean", weight_column="w",
        )
        g = result.groups[0]
        assert g.estimate == pytest.approx(17.5)
        assert g.sample_size == 2
        # weighted N covers every row of the group, present or not
        assert g.weighted_n == pytest.approx(9.0)

    def test_unparseable_or_zero_weight_defaults_to_one(self):
        result = self._estimate(
            "x,w\n10,abc\n20,0\n",
            estimating_column="x", aggregation="mean", weight_column="w",
        )
        g = result.groups[0]
        assert g.estimate == pytest.approx(15.0)
        assert g.weighted_n == pytest.approx(2.0)

    def test_sum_is_unweighted_and_margin_is_population_std(self):
        # non-standard SUM margin kept on purpose: it reduces to the population std
        result = self._estimate(
            "x,w\n1,10\n2,10\n3,10\n",
            estimating_column="x", aggregation="Sum", weight_column="w",
        )
        g = result.groups[0]
        assert g.estimate == pytest.approx(6.0)
        assert g.margin_of_error == pytest.approx(math.sqrt(2.0 / 3.0))
        assert g.weighted_n == pytest.approx(30.0)

    def test_median(self):
        result = self._estimate("x\n4\n1\n3\n2\n", estimating_column="x", aggregation="Median")
        g = result.groups[0]
        assert g.estimate == pytest.approx(2.5)
        assert g.margin_of_error == pytest.approx(1.57 * math.sqrt(1.25) / 2)

    def test_proportion_of_first_value(self):
        answers = ["yes", "no", "no", "yes", "no", "no", "yes", "no", "no", "no"]
        csv_text = make_csv(["answer"], [[a] for a in answers])
        result = self._estimate(csv_text, estimating_column="answer", aggregation="Proportion")
        g = result.groups[0]
        assert g.estimate == pytest.approx(0.3)
        assert g.margin_of_error == pytest.approx(0.2840, abs=1e-4)
        assert g.margin_of_error == pytest.approx(1.96 * math.sqrt(0.3 * 0.7 / 10))
        assert g.sample_size == 10

    def test_count(self):
        result = self._estimate("x\n1\n\n3\n4\n5\n", estimating_column="x", aggregation="Count")
        g = result.groups[0]
        assert g.estimate == 4
        assert g.margin_of_error == pytest.approx(2.0)
        assert g.confidence_interval == (pytest.approx(2.0), pytest.approx(6.0))

    def test_confidence_interval_lower_floor_only(self):
        result = self._estimate("x\n-5\n5\n", estimating_column="x", aggregation="Mean")
        g = result.groups[0]
        assert g.estimate == pytest.approx(0.0)
        lower, upper = g.confidence_interval
        assert lower == 0.0
        assert upper == pytest.approx(g.margin_of_error)

    def test_empty_group_has_no_estimate(self):
        result = self._estimate(
            "g,x\nA,1\nB,\nA,3\n",
            estimating_column="x", aggregation="Mean", grouping_column="g",
        )
        b = result.groups[1]
        assert b.group == "B"
        assert b.estimate is None
        assert b.confidence_interval is None
        assert b.sample_size == 0
        assert b.weighted_n == 1

    def test_none_grouping_sentinel(self):
        from survey_app.core.analysis import EstimationRequest
        req = EstimationRequest("x", "mean", grouping_column="None")
        assert req.grouping_column is None
        assert req.grouping_label == "None"

    def test_unknown_aggregation_fails_only_its_request(self):
        from survey_app.core.analysis import EstimationRequest, WeightedParameterEstimator
        ds = make_dataset(make_grouped_csv())
        requests = [EstimationRequest("score", "Mean"), EstimationRequest("score", "Variance")]
        assert requests[1].aggregation == "Variance"
        assert requests[1].to_dict()["aggregationType"] == "Variance"

        outcomes = WeightedParameterEstimator().estimate_all(ds, requests)
        assert [o.status for o in outcomes] == ["ok", "error"]
        error = outcomes[1].error
        assert error.code == "unsupported_aggregation"
        assert error.message.startswith("Unknown aggregation 'Variance'")
        assert "Mean, Sum, Median, Proportion, Count" in error.message
        assert "any column" not in error.message

    def test_kind_mismatch_message_names_the_column(self):
        from survey_app.core.analysis import UnsupportedAggregation
        with pytest.raises(UnsupportedAggregation) as exc:
            self._estimate(SCENARIO_CSV, estimating_column="city", aggregation="Mean")
        assert exc.value.message == (
            "Aggregation 'Mean' is not supported on a categorical column 'city'"
        )

    def test_sum_on_categorical_is_unsupported(self):
        from survey_app.core.analysis import UnsupportedAggregation
        with pytest.raises(UnsupportedAggregation) as exc:
            self._estimate(SCENARIO_CSV, estimating_column="city", aggregation="Sum")
        assert exc.value.kind == "categorical"

    def test_outcomes_keep_request_order_and_failures(self):
        from survey_app.core.analysis import EstimationRequest, WeightedParameterEstimator
        ds = make_dataset(make_grouped_csv())
        requests = [
            EstimationRequest("score", "mean", "region"),
            EstimationRequest("income", "mean"),
            EstimationRequest("region", "sum"),
            EstimationRequest("score", "count", grouping_column="district"),
            EstimationRequest("score", "mean", weight_column="nope"),
            EstimationRequest("region", "proportion"),
        ]
        outcomes = WeightedParameterEstimator().estimate_all(ds, requests)
        assert len(outcomes) == len(requests)
        assert [o.request for o in outcomes] == requests
        assert [o.status for o in outcomes] == ["ok", "error", "error", "error", "error", "ok"]
        assert outcomes[1].error.code == "unknown_column"
        assert outcomes[2].error.code == "unsupported_aggregation"
        assert outcomes[3].error.role == "grouping"
        assert outcomes[4].error.role == "weight"

    def test_non_positive_weight_total_fails_request(self):
        from survey_app.core.analysis import EstimationRequest, WeightedParameterEstimator
        ds = make_dataset("x,w\n1,-1\n2,1\n")
        outcomes = WeightedParameterEstimator().estimate_all(
            ds, [EstimationRequest("x", "mean", weight_column="w")]
        )
        assert outcomes[0].error.code == "insufficient_data"

    def test_negative_weight_fails_only_its_request(self):
        from survey_app.core.analysis import EstimationRequest, WeightedParameterEstimator
        ds = make_dataset("x,w\n0,-1\n10,3\n")
        outcomes = WeightedParameterEstimator().estimate_all(ds, [
            EstimationRequest("x", "count"),
            EstimationRequest("x", "mean", weight_column="w"),
            EstimationRequest("x", "median"),
        ])
        assert [o.status for o in outcomes] == ["ok", "error", "ok"]
        assert outcomes[0].result.groups[0].estimate == 2
        error = outcomes[1].error
        assert error.code == "insufficient_data"
        assert "negative" in error.message
        assert "data row 1" in error.message

    def test_weighted_mean_rejects_non_positive_total(self):
        from survey_app.core.analysis import InsufficientData
        from survey_app.core.analysis.estimator import weighted_mean
        with pytest.raises(InsufficientData):
            weighted_mean([1.0, 2.0], [0.0, 0.0])

    def test_aggregation_guidance(self):
        from survey_app.core.analysis import (
            Aggregation, ColumnKind, allowed_aggregations, recommend_aggregation,
            weight_candidates,
        )
        ds = make_dataset(make_csv(
            ["satisfaction_rating", "total_spend", "age", "city"],
            [[4, 100, 30, "A"], [5, 200, 40, "B"]],
        ))
        assert recommend_aggregation(ds.column("satisfaction_rating")) == Aggregation.MEAN
        assert recommend_aggregation(ds.column("total_spend")) == Aggregation.SUM
        assert recommend_aggregation(ds.column("age")) == Aggregation.MEAN
        assert recommend_aggregation(ds.column("city")) == Aggregation.PROPORTION
        assert Aggregation.SUM not in allowed_aggregations(ColumnKind.CATEGORICAL)
        assert allowed_aggregations(ColumnKind.NUMERIC)[0] == Aggregation.MEAN
        assert weight_candidates(ds) == ["satisfaction_rating", "total_spend", "age"]


class TestEstimateExport:
    """Tests for export_estimates_csv"""

    def test_export_columns_and_precision(self):
        from survey_app.core.analysis import (
            EstimationRequest, WeightedParameterEstimator, export_estimates_csv, parse_csv,
        )
        ds = make_dataset(make_grouped_csv())
        outcomes = WeightedParameterEstimator().estimate_all(ds, [
            EstimationRequest("score", "mean", "region", weight_column="weight"),
            EstimationRequest("missing", "mean"),
        ])
        text = export_estimates_csv(outcomes)
        table = parse_csv(text)
        assert table.headers == [
            "Parameter", "Group", "Aggregation", "Estimate", "MarginOfError",
            "CI-Lower", "CI-Upper", "SampleSize", "WeightedN",
        ]
        assert table.total_rows == 3
        first = table.rows[0]
        assert first["Parameter"] == "score"
        assert first["Aggregation"] == "Mean"
        assert first["Estimate"] == "2.0000"
        assert first["WeightedN"] == "2"

    def test_export_round_trip_within_precision(self):
        from survey_app.core.analysis import (
            EstimationRequest, WeightedParameterEstimator, export_estimates_csv, parse_csv,
        )
        ds = make_dataset(make_grouped_csv())
        result = WeightedParameterEstimator().estimate(
            ds, EstimationRequest("score", "median", "region"),
        )
        table = parse_csv(export_estimates_csv([result]))
        for g, row in zip(result.groups, table.rows):
            assert float(row["Estimate"]) == pytest.approx(g.estimate, abs=5e-5)
            assert float(row["MarginOfError"]) == pytest.approx(g.margin_of_error, abs=5e-5)
            assert float(row["CI-Lower"]) == pytest.approx(g.confidence_interval[0], abs=5e-5)
            assert float(row["CI-Upper"]) == pytest.approx(g.confidence_interval[1], abs=5e-5)
            assert int(row["SampleSize"]) == g.sample_size

    def test_export_blank_cells_for_empty_group(self):
        from survey_app.core.analysis import (
            EstimationRequest, WeightedParameterEstimator, export_estimates_csv,
        )
        ds = make_dataset("g,x\nA,1\nB,\n")
        result = WeightedParameterEstimator().estimate(ds, EstimationRequest("x", "mean", "g"))
        lines = export_estimates_csv([result]).strip().split("\n")
        assert lines[2] == "x,B,Mean,,,,,0,1"


# ═══════════════════════════════════════════════════════════════
# 5. VISUALIZATION TESTS
# ═══════════════════════════════════════════════════════════════

class TestVisualization:
    """Tests for visualization.py"""

    def test_histogram_edges_and_counts(self):
        from survey_app.core.analysis import histogram
        bins = histogram([float(v) for v in range(11)], bins=5)
        assert [b.count for b in bins] == [2, 2, 2, 2, 3]
        assert bins[0].lower == 0.0
        assert bins[-1].upper == pytest.approx(10.0)
        assert bins[1].label == "2.0-4.0"

    def test_histogram_counts_sum_to_values(self):
        from survey_app.core.analysis import histogram
        values = [0.3, 1.7, 2.2, 2.2, 9.9, 4.4, 5.5, 6.1, 7.0, 3.3, 8.8, 0.0]
        bins = histogram(values, bins=20)
        assert len(bins) == 20
        assert sum(b.count for b in bins) == len(values)

    def test_constant_column_single_bin(self):
        from survey_app.core.analysis import histogram
        bins = histogram([5.0, 5.0, 5.0])
        assert len(bins) == 1
        assert bins[0].count == 3
        assert bins[0].lower == bins[0].upper == 5.0

    def test_empty_values(self):
        from survey_app.core.analysis import histogram
        assert histogram([]) == []

    def test_builder_payloads(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine, VisualizationBuilder
        ds = make_dataset(make_csv(["x", "c"], [[1, "a"], [2, "a"], [3, "b"]]))
        analysis = DescriptiveStatisticsEngine().analyze(ds)
        vis = VisualizationBuilder().build(ds, analysis)
        assert vis["x"].chart == "histogram"
        assert sum(item.count for item in vis["x"].data) == 3
        bar = vis["c"].to_dict()
        assert bar["type"] == "bar"
        assert bar["data"][0] == {"label": "a", "count": 2, "percentage": 66.7}
        assert bar["data"][1]["percentage"] == 33.3
        assert bar["stats"]["mode"] == "a"


# ═══════════════════════════════════════════════════════════════
# 6. INSIGHT RULES TESTS
# ═══════════════════════════════════════════════════════════════

class TestInsightRules:
    """Tests for insight_rules.py"""

    def _insights(self, csv_text, goal=None, **overrides):
        from survey_app.core.analysis import (
            AnalysisThresholds, DescriptiveStatisticsEngine, InsightRuleEngine,
        )
        thresholds = AnalysisThresholds().override(overrides)
        ds = make_dataset(csv_text)
        analysis = DescriptiveStatisticsEngine(thresholds).analyze(ds)
        return InsightRuleEngine(thresholds).evaluate(ds, analysis, goal)

    def test_high_missing_rate_warning(self):
        csv_text = make_csv(["a", "b"], [[1, None], [None, "x"], [3, "y"], [4, None]])
        insights = self._insights(csv_text)
        dq = [i for i in insights if i.rule_id == "DQ-001"]
        assert len(dq) == 1
        assert dq[0].significance.value == "high"
        assert dq[0].kind.value == "warning"
        assert "37.5%" in dq[0].finding

    def test_skewness_trend_and_kurtosis_anomaly(self):
        csv_text = make_csv(["x"], [[1], [1], [1], [1], [10]])
        insights = self._insights(csv_text)
        rule_ids = [i.rule_id for i in insights]
        assert rule_ids == ["DA-001", "OD-001"]
        assert "x shows positive skewness (3.1" in insights[0].finding
        assert insights[1].kind.value == "anomaly"

    def test_negative_skew_direction(self):
        csv_text = make_csv(["x"], [[10], [10], [10], [10], [1]])
        insights = self._insights(csv_text)
        assert "negative skewness" in insights[0].finding

    def test_response_bias_pattern(self):
        csv_text = make_csv(["answer"], [["agree"]] * 9 + [["disagree"]])
        insights = self._insights(csv_text)
        pattern = [i for i in insights if i.rule_id == "RP-001"]
        assert len(pattern) == 1
        assert '"agree" (90.0%)' in pattern[0].finding

    def test_identifier_like_column(self):
        csv_text = make_csv(["respondent"], [[f"r{i}"] for i in range(10)])
        insights = self._insights(csv_text)
        assert [i.rule_id for i in insights] == ["DS-001"]
        assert insights[0].significance.value == "low"

    def test_goal_recommendation(self):
        insights = self._insights("x\n1\n2\n3\n4\n", goal="Understand satisfaction drivers")
        rec = insights[-1]
        assert rec.rule_id == "AR-001"
        assert "Understand satisfaction drivers" in rec.finding
        assert rec.kind.value == "recommendation"

    def test_thresholds_control_rules(self):
        csv_text = make_csv(["answer"], [["agree"]] * 7 + [["disagree"]] * 3)
        assert not [i for i in self._insights(csv_text) if i.rule_id == "RP-001"]
        relaxed = self._insights(csv_text, mode_share_pct_threshold=60.0)
        assert [i for i in relaxed if i.rule_id == "RP-001"]

    def test_rule_order_is_stable(self):
        csv_text = make_csv(
            ["id", "x", "answer"],
            [[f"r{i}", v, "same"] for i, v in enumerate([1, 1, 1, 1, 1, 1, 1, 1, 1, 50])],
        )
        insights = self._insights(csv_text, goal="g")
        assert [i.rule_id for i in insights] == ["DA-001", "OD-001", "DS-001", "RP-001", "AR-001"]

    def test_quality_score_rounds_half_up(self):
        from survey_app.core.analysis import InsightRuleEngine
        # 40 cells, 1 missing: 0.4*97.5 + 0.3*95 + 0.3*90 = 94.5
        rows = [[i, i] for i in range(20)]
        rows[0][1] = None
        ds = make_dataset(make_csv(["a", "b"], rows))
        assert InsightRuleEngine().quality_score(ds) == 95

    def test_quality_score_inputs_are_pluggable(self):
        from survey_app.core.analysis import AnalysisThresholds, InsightRuleEngine
        ds = make_dataset("a\n1\n2\n")
        engine = InsightRuleEngine(AnalysisThresholds(consistency_score=100, validity_score=100))
        assert engine.quality_score(ds) == 100
        assert InsightRuleEngine().quality_score(ds) == 96

    def test_executive_summary(self):
        from survey_app.core.analysis import DescriptiveStatisticsEngine, InsightRuleEngine
        ds = make_dataset(make_csv(["x", "c"], [[1, "a"], [None, None], [None, "b"]]))
        analysis = DescriptiveStatisticsEngine().analyze(ds)
        engine = InsightRuleEngine()
        insights = engine.evaluate(ds, analysis, "goal")
        summary = engine.executive_summary(ds, analysis, insights)
        assert summary.overview == (
            "Survey analysis of 3 respondents across 2 variables (1 numeric, 1 categorical)."
        )
        assert len(summary.key_findings) <= 3
        assert summary.data_quality == "2 high-priority data quality issues identified"
        assert len(summary.recommendations) == 3

    def test_insight_payload_keys_are_camel_case(self):
        insights = self._insights(make_csv(["x"], [[1], [1], [1], [1], [10]]))
        payload = insights[0].to_dict()
        assert payload["ruleId"] == "DA-001"
        assert payload["metricValue"] == pytest.approx(3.125)
        assert payload["type"] == "trend"
        assert "rule_id" not in payload and "metric_value" not in payload

    def test_custom_rule_table(self):
        from survey_app.core.analysis import (
            DescriptiveStatisticsEngine, Insight, InsightKind, InsightRuleEngine, Significance,
        )

        def always(ctx):
            return [Insight("Custom", "hello", Significance.LOW, InsightKind.INFO, rule_id="X-1")]

        ds = make_dataset("a\n1\n")
        analysis = DescriptiveStatisticsEngine().analyze(ds)
        insights = InsightRuleEngine(rules=[always]).evaluate(ds, analysis)
        assert [i.rule_id for i in insights] == ["X-1"]


# ═══════════════════════════════════════════════════════════════
# 7. ORCHESTRATOR TESTS
# ═══════════════════════════════════════════════════════════════

class TestSurveyAnalyzer:
    """End-to-end tests for orchestrator.py"""

    def test_full_report(self):
        from survey_app.core.analysis import EstimationRequest, SurveyAnalyzer
        report = SurveyAnalyzer().analyze(
            make_grouped_csv(),
            analysis_goal="Compare regions",
            requests=[EstimationRequest("score", "Mean", "region", "weight")],
        )
        d = report.to_dict()
        assert set(d["statisticalAnalysis"]) == {"region", "score", "weight"}
        assert d["statisticalAnalysis"]["score"]["type"] == "numeric"
        assert d["visualizations"]["region"]["type"] == "bar"
        assert d["parameterEstimates"][0]["status"] == "ok"
        assert len(d["parameterEstimates"][0]["result"]["groups"]) == 3
        assert d["insights"][-1]["type"] == "recommendation"
        assert 0 <= d["qualityScore"] <= 100
        assert d["executiveSummary"]["overview"].startswith("Survey analysis of 6 respondents")

    def test_parse_error_rejects_dataset(self):
        from survey_app.core.analysis import ParseError, SurveyAnalyzer
        with pytest.raises(ParseError):
            SurveyAnalyzer().analyze("only_header\n")

    def test_preview(self):
        from survey_app.core.analysis import SurveyAnalyzer
        rows = [[i, "a" if i % 2 else "b"] for i in range(15)]
        rows[3][1] = None
        preview = SurveyAnalyzer().preview(make_csv(["n", "c"], rows)).to_dict()
        assert preview["totalRows"] == 15
        assert preview["totalColumns"] == 2
        assert preview["missingValues"] == 1
        assert len(preview["sampleData"]) == 10
        n, c = preview["variables"]
        assert n["type"] == "numeric"
        assert n["mean"] == pytest.approx(7.0)
        assert n["min"] == 0 and n["max"] == 14
        assert c == {"name": "c", "type": "categorical", "missing": 1, "uniqueValues": 2}

    def test_estimate_accepts_dataset_or_text(self):
        from survey_app.core.analysis import EstimationRequest, SurveyAnalyzer
        analyzer = SurveyAnalyzer()
        requests = [EstimationRequest("score", "count")]
        from_text = analyzer.estimate(make_grouped_csv(), requests)
        from_dataset = analyzer.estimate(analyzer.load(make_grouped_csv()), requests)
        assert from_text[0].result.groups == from_dataset[0].result.groups

    def test_thresholds_override_does_not_mutate(self):
        from survey_app.core.analysis import AnalysisThresholds
        base = AnalysisThresholds()
        tuned = base.override({"histogram_bins": 10, "not_a_field": 1})
        assert tuned.histogram_bins == 10
        assert base.histogram_bins == 20
        assert tuned.get("not_a_field") is None
