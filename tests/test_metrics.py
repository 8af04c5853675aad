import pytest

from care_core.charts import QUALITY_SERIES_COLOR, get_status_color
from care_core.data import load_session, prepare_context
from care_core.filters import default_filters, select_none, with_selection
from care_core.metrics_caregivers import compute_caregivers
from care_core.metrics_debug import compute_debug
from care_core.metrics_operations import compute_operations
from care_core.metrics_quality import compute_quality
from care_core.metrics_residents import ALL_COMPLETED_MESSAGE, compute_residents

from tests.conftest import make_row


@pytest.fixture
def full_ctx(session):
    filters = default_filters(session.options)
    return filters, prepare_context(filters, session)


def _without_charts(payload):
    return {k: v for k, v in payload.items() if k != "charts"}


class TestQuality:
    def test_counts_sum_to_filtered_size(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_quality(filters, ctx)
        assert sum(payload["series"][0]["values"]) == len(ctx["filtered"])

    def test_ranking_and_colors(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_quality(filters, ctx)
        assert payload["labels"][:3] == ["Fait", "Refus du résident", "Absent(e)"]
        assert payload["series"][0]["values"][:3] == [21, 3, 2]
        assert payload["colors"] == [get_status_color(label) for label in payload["labels"]]
        assert payload["ranked_list"] == [[label, v] for label, v in zip(payload["labels"], payload["series"][0]["values"])]
        assert "status_distribution" in payload["charts"]

    def test_sum_holds_under_narrower_filter(self, session):
        filters = with_selection(default_filters(session.options), "caregivers", ["IDE ASQ", "KINE"])
        ctx = prepare_context(filters, session)
        payload = compute_quality(filters, ctx)
        assert sum(payload["series"][0]["values"]) == len(ctx["filtered"]) == 22

    def test_series_color_is_neutral(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_quality(filters, ctx)
        assert payload["series"][0]["name"] == "Actes"
        assert payload["series"][0]["color"] == QUALITY_SERIES_COLOR


class TestCaregivers:
    def test_table_totals(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_caregivers(filters, ctx)
        table = payload["table"]
        statuses = [h for h in table["headers"] if h not in ("Intervenant", "Total")]
        assert table["headers"][0] == "Intervenant" and table["headers"][-1] == "Total"
        for row in table["rows"]:
            assert row["Total"] == sum(row[s] for s in statuses)
        ide = next(r for r in table["rows"] if r["Intervenant"] == "IDE ASQ")
        assert (ide["Fait"], ide["Refus du résident"], ide["Absent(e)"], ide["Total"]) == (15, 3, 2, 20)

    def test_ranked_by_total_with_one_series_per_status(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_caregivers(filters, ctx)
        assert payload["labels"][0] == "IDE ASQ"
        assert [s["name"] for s in payload["series"]] == sorted(ctx["filtered"]["status"].unique())
        for s in payload["series"]:
            assert len(s["values"]) == len(payload["labels"])
            assert s["color"] == get_status_color(s["name"])

    def test_refused_care_labels(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_caregivers(filters, ctx)
        assert payload["ranked_list"] == [["Toilette", 2], ["Repas", 1]]

    def test_total_mode(self, full_ctx):
        filters, ctx = full_ctx
        activity = compute_caregivers(filters, ctx, mode="total")["activity"]
        pairs = dict(zip(activity["labels"], activity["series"][0]["values"]))
        assert activity["labels"][0] == "IDE ASQ"
        assert pairs == {"IDE ASQ": 15, "AS Marie": 3, "KINE": 2, "ASH Paul": 1}

    def test_average_mode(self, full_ctx):
        filters, ctx = full_ctx
        activity = compute_caregivers(filters, ctx, mode="average")["activity"]
        pairs = dict(zip(activity["labels"], activity["series"][0]["values"]))
        assert pairs["AS Marie"] == pytest.approx(1.5)
        assert pairs["ASH Paul"] == 0.0
        assert pairs["KINE"] == pytest.approx(2.0)
        assert pairs["IDE ASQ"] == pytest.approx(5.0)
        assert activity["labels"] == ["IDE ASQ", "KINE", "AS Marie", "ASH Paul"]

    def test_mode_from_filters(self, session):
        filters = default_filters(session.options, caregiver_mode="average")
        payload = compute_caregivers(filters, prepare_context(filters, session))
        assert payload["mode"] == "average"

    def test_average_mode_with_offset_dates(self):
        rows = [
            make_row("A", "IDE", "Fait", when="2025-03-29T07:00:00Z"),
            make_row("A", "IDE", "Fait", when="29/03/2025 23:30"),
            make_row("B", "IDE", "Fait", when="2025-03-30T23:30:00+02:00"),
            make_row("B", "KINE", "Fait", when="2025-03-31T08:00:00+02:00"),
        ]
        s = load_session(rows)
        filters = default_filters(s.options, caregiver_mode="average")
        activity = compute_caregivers(filters, prepare_context(filters, s))["activity"]
        pairs = dict(zip(activity["labels"], activity["series"][0]["values"]))
        assert pairs == {"IDE": pytest.approx(1.5), "KINE": pytest.approx(1.0)}


class TestResidents:
    def test_only_non_completed(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_residents(filters, ctx)
        names = [s["name"] for s in payload["series"]]
        assert "Fait" not in names
        assert names == ["Absent(e)", "Non défini", "Non nécessaire", "Refus du résident"]
        assert payload["labels"][:2] == ["MME DURAND Paule", "MME DUPONT Jacqueline"]
        assert payload["ranked_list"][:2] == [["MME DURAND Paule", 3], ["MME DUPONT Jacqueline", 2]]
        assert payload["total_not_done"] == 7

    def test_series_aligned_to_residents(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_residents(filters, ctx)
        refus = next(s for s in payload["series"] if s["name"] == "Refus du résident")
        idx = payload["labels"].index("MME DUPONT Jacqueline")
        assert refus["values"][idx] == 1

    def test_ranked_list_capped_at_five(self):
        rows = [make_row(f"Résident {i}", "IDE", "Refus du résident") for i in range(8)]
        s = load_session(rows)
        filters = default_filters(s.options)
        payload = compute_residents(filters, prepare_context(filters, s))
        assert len(payload["labels"]) == 8
        assert len(payload["ranked_list"]) == 5

    def test_all_completed(self):
        s = load_session([make_row("A", "IDE", "fait"), make_row("B", "IDE", "Fait")])
        filters = default_filters(s.options)
        payload = compute_residents(filters, prepare_context(filters, s))
        assert payload["has_data"] is False
        assert payload["message"] == ALL_COMPLETED_MESSAGE
        assert payload["total_not_done"] == 0
        assert payload["labels"] == [] and payload["ranked_list"] == [] and payload["charts"] == {}


class TestOperations:
    def test_tablet_percentages(self, full_ctx):
        filters, ctx = full_ctx
        payload = compute_operations(filters, ctx)
        pct = dict(zip(payload["labels"], payload["series"][0]["values"]))
        assert pct["IDE ASQ"] == pytest.approx(90.0, abs=0.1)
        assert pct["KINE"] == 0
        assert pct["AS Marie"] == 100.0
        assert payload["labels"][:2] == ["AS Marie", "IDE ASQ"]
        assert len(payload["ranked_list"]) == 5
        assert payload["ranked_list"][0] == ["AS Marie", 100.0]

    def test_source_breakdown(self, full_ctx):
        filters, ctx = full_ctx
        breakdown = dict(compute_operations(filters, ctx)["source_breakdown"])
        assert breakdown == {"Tablette": 21, "Ordinateur": 6, "Non spécifié": 1}


VIEWS = [compute_quality, compute_caregivers, compute_residents, compute_operations]


@pytest.mark.parametrize("compute", VIEWS)
def test_empty_selection_yields_no_data(session, compute):
    filters = select_none(default_filters(session.options), "statuses")
    payload = compute(filters, prepare_context(filters, session))
    assert payload["has_data"] is False
    assert payload["message"]
    assert payload["labels"] == [] and payload["series"] == [] and payload["charts"] == {}


@pytest.mark.parametrize("compute", VIEWS)
def test_idempotent_and_pure(full_ctx, compute):
    filters, ctx = full_ctx
    before = ctx["filtered"].copy()
    first = compute(filters, ctx)
    second = compute(filters, ctx)
    assert _without_charts(first) == _without_charts(second)
    assert first["charts"].keys() == second["charts"].keys()
    assert ctx["filtered"].equals(before)


def test_debug_payload(session):
    filters = with_selection(default_filters(session.options), "caregivers", ["KINE"])
    payload = compute_debug(filters, prepare_context(filters, session))
    assert payload["row_counts"] == {"dataset_rows": 28, "filtered_rows": 2}
    assert payload["dateless_rows"] == 8
    assert all(c["resolved"] for c in payload["columns"])
    assert payload["date_range"]["min"].startswith("2025-09-01")
    assert payload["distinct_counts"]["caregivers"] == 5
