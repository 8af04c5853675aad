import html
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from care_core.charts import side_list_html
from care_core.data import IngestionError, content_signature, load_workbook_session, prepare_context
from care_core.filters import DIMENSIONS, default_filters, search_options, with_selection
from care_core.metrics_caregivers import compute_caregivers
from care_core.metrics_debug import compute_debug
from care_core.metrics_operations import compute_operations
from care_core.metrics_quality import compute_quality
from care_core.metrics_residents import compute_residents

logger = logging.getLogger(__name__)
alt.data_transformers.disable_max_rows()

st.set_page_config(page_title="Analyseur de Soins EHPAD", layout="wide")

FILTER_LABELS = {
    "residents": "Résidents",
    "caregivers": "Intervenants",
    "care_labels": "Soins",
    "statuses": "États",
}
SIDE_TITLES = {
    "quality": "Répartition des actes",
    "caregivers": "Soins les plus refusés (par type)",
    "residents": "Top 5 des résidents avec le plus d'actes non réalisés",
    "operations": "Top 5 utilisation tablette (%)",
}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .side-item {display: flex;justify-content: space-between;background: #ffffff;padding: 8px 12px;
                    border-radius: 6px;box-shadow: 0 1px 2px rgba(0,0,0,0.05);margin-bottom: 6px;}
        .side-value {font-weight: 700;background: #dbeafe;color: #1e40af;padding: 2px 8px;border-radius: 999px;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{html.escape(title)}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_side_list(title: str, items: List[List[Any]]):
    with card(title):
        if not items:
            st.caption("Aucune donnée à afficher.")
            return
        st.markdown(side_list_html(items), unsafe_allow_html=True)


def render_chart(spec: Optional[Dict[str, Any]]):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)


def render_payload(payload: Dict[str, Any], chart_key: str):
    if not payload["has_data"]:
        st.info(payload["message"] or "Aucune donnée à afficher")
        return
    main, side = st.columns([3, 1])
    with main:
        render_chart(payload["charts"].get(chart_key))
    with side:
        render_side_list(SIDE_TITLES[payload["view"]], payload["ranked_list"])


# ---------- Upload ----------
inject_base_styles()
st.title("Analyseur de Soins EHPAD")

uploaded = st.file_uploader("Historique des signatures (Excel)", type=["xlsx", "xls"])
if uploaded is None:
    st.info("Chargez un export Excel pour afficher le tableau de bord.")
    st.stop()

signature = content_signature(uploaded.getvalue())
if st.session_state.get("care_signature") != signature:
    try:
        session = load_workbook_session(uploaded, source_name=uploaded.name)
    except IngestionError as exc:
        logger.exception("ingestion failed for %s", uploaded.name)
        st.error(str(exc))
        st.stop()
    st.session_state["care_session"] = session
    st.session_state["care_signature"] = signature
    st.session_state["care_filters"] = default_filters(session.options)
    for dim in DIMENSIONS:
        st.session_state[f"filter_{dim}"] = list(session.options.values(dim))

session = st.session_state["care_session"]
st.caption(f"Fichier chargé : {session.source_name}")

# ----- Sidebar: filters -----
filters = st.session_state["care_filters"]
with st.sidebar:
    st.markdown("### Filtres")
    for dim in DIMENSIONS:
        options = list(session.options.values(dim))
        with st.expander(FILTER_LABELS[dim], expanded=False):
            term = st.text_input("Rechercher", key=f"search_{dim}")
            cols = st.columns(2)
            if cols[0].button("Tout cocher", key=f"all_{dim}"):
                st.session_state[f"filter_{dim}"] = options
                st.session_state[f"ver_{dim}"] = st.session_state.get(f"ver_{dim}", 0) + 1
            if cols[1].button("Tout décocher", key=f"none_{dim}"):
                st.session_state[f"filter_{dim}"] = []
                st.session_state[f"ver_{dim}"] = st.session_state.get(f"ver_{dim}", 0) + 1
            visible = search_options(options, term)
            current = st.session_state.get(f"filter_{dim}", options)
            hidden_selected = [v for v in current if v not in visible]
            picked = st.multiselect(
                FILTER_LABELS[dim],
                options=visible,
                default=[v for v in current if v in visible],
                label_visibility="collapsed",
                key=f"pick_{dim}_{st.session_state.get(f'ver_{dim}', 0)}_{term}",
            )
            st.session_state[f"filter_{dim}"] = hidden_selected + picked
        filters = with_selection(filters, dim, st.session_state[f"filter_{dim}"])
    st.session_state["care_filters"] = filters

ctx = prepare_context(filters, session)
st.caption(f"{len(ctx['filtered'])} actes sélectionnés sur {len(ctx['dataset'])}")

tab_quality, tab_caregivers, tab_residents, tab_operations = st.tabs(
    ["Qualité des soins", "Analyse intervenants", "Suivi résidents", "Opérationnel"]
)

try:
    with tab_quality:
        render_payload(compute_quality(filters, ctx), "status_distribution")

    with tab_caregivers:
        mode_label = st.radio("Vue", ["Total", "Moyenne par jour"], horizontal=True)
        mode = "average" if mode_label == "Moyenne par jour" else "total"
        payload = compute_caregivers(filters, ctx, mode=mode)
        render_payload(payload, "activity")
        if payload["has_data"]:
            with card("Actes par intervenant et par état"):
                render_chart(payload["charts"].get("status_by_caregiver"))
                table = payload["table"]
                st.dataframe(pd.DataFrame(table["rows"], columns=table["headers"]), use_container_width=True, hide_index=True)

    with tab_residents:
        render_payload(compute_residents(filters, ctx), "not_done_by_resident")

    with tab_operations:
        payload = compute_operations(filters, ctx)
        render_payload(payload, "tablet_usage")
        if payload["has_data"]:
            render_side_list("Détail par source", payload["source_breakdown"])
except Exception:
    logger.exception("view computation failed")
    st.error("Erreur lors du calcul des indicateurs.")

with st.expander("Qualité des données", expanded=False):
    st.write(compute_debug(filters, ctx))
