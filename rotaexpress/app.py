"""
Streamlit application for Rota Express.

The courier scans a parcel label (or types an address), confirms the
match when the lookup is ambiguous, and ends up with a list of stops
that can be reordered nearest-first from the starting point. Stops are
ticked off as delivered, and each one links out to Waze or Google Maps.

To run this app locally for development, install the package and
execute:

    streamlit run rotaexpress/app.py

Configuration (Gemini key, geocoder, data directory) is read from
``.streamlit/secrets.toml`` or the environment; see ``rotaexpress.config``.
"""

from __future__ import annotations

import os
import sys
from typing import Optional

import streamlit as st
from streamlit_folium import folium_static

# Allow `streamlit run rotaexpress/app.py` from a source checkout.
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.append(parent_dir)

from rotaexpress.config import Settings, configure_logging, load_settings
from rotaexpress.disambiguation import FallbackManualEntry, PromptUser, Target
from rotaexpress.errors import CaptureUnavailable, NoOriginAvailable, ResolutionFailure, ResolutionInProgress
from rotaexpress.geo import coordinate_or_none
from rotaexpress.geocode import build_resolver
from rotaexpress.gemini import GeminiClient
from rotaexpress.location import LiveLocationTracker
from rotaexpress.navigation import navigation_links
from rotaexpress.ocr import ImageToText
from rotaexpress.sequencing import display_order, distances_from, effective_origin, resequence_store
from rotaexpress.stops import StopStore
from rotaexpress.storage import JsonFileStorage
from rotaexpress.visualisation import create_folium_map
from rotaexpress.workflow import CaptureWorkflow, Ticket


@st.cache_resource
def get_settings() -> Settings:
    settings = load_settings(st.secrets)
    configure_logging(settings.log_level)
    return settings


@st.cache_resource
def get_workflow() -> CaptureWorkflow:
    """Build the long-lived engine objects once per server process."""
    settings = get_settings()
    storage = JsonFileStorage(settings.data_dir, settings.namespace)
    store = StopStore.load(storage)
    reader = None
    if settings.has_credentials:
        reader = ImageToText(GeminiClient(settings.gemini_api_key, timeout=settings.http_timeout), model=settings.ocr_model)
    return CaptureWorkflow(store, build_resolver(settings), reader=reader, tracker=LiveLocationTracker())


def open_entry(workflow: CaptureWorkflow, target: Target, stop_id: Optional[str] = None, prefill: str = "") -> None:
    """Start a resolution for ``target`` and show the manual entry form."""
    current: Optional[Ticket] = st.session_state.get("ticket")
    if current is not None:
        workflow.dismiss(current)
    # a candidate list left over from the dismissed ticket must not stay on screen
    st.session_state.pop("prompt", None)
    try:
        st.session_state["ticket"] = workflow.begin(target, stop_id)
    except ResolutionInProgress as exc:
        st.warning(str(exc))
        return
    st.session_state["manual_input"] = prefill
    st.session_state["show_manual"] = True


def close_entry(workflow: CaptureWorkflow) -> None:
    ticket: Optional[Ticket] = st.session_state.pop("ticket", None)
    if ticket is not None:
        workflow.dismiss(ticket)
    st.session_state["show_manual"] = False
    st.session_state["manual_input"] = ""
    st.session_state.pop("prompt", None)


def handle_decision(workflow: CaptureWorkflow, ticket: Ticket, decision) -> None:
    if decision is None:
        return
    if isinstance(decision, PromptUser):
        st.session_state["prompt"] = decision
        st.session_state["show_manual"] = False
    elif isinstance(decision, FallbackManualEntry):
        st.warning("Endereço não localizado. Corrija o texto e tente novamente.")
        open_entry(workflow, ticket.target, ticket.stop_id, prefill=decision.raw_text)
    else:
        st.session_state.pop("ticket", None)
        st.session_state["show_manual"] = False
        st.session_state["manual_input"] = ""
        st.success(f"Endereço confirmado: {decision.candidate.address}")


def handle_failure(workflow: CaptureWorkflow, ticket: Ticket, exc: Exception, query: str = "") -> None:
    if isinstance(exc, CaptureUnavailable):
        st.error("Câmera bloqueada ou indisponível. Digite o endereço.")
    else:
        st.error("Erro de conexão com o serviço de endereços. Tente novamente ou digite o endereço.")
    open_entry(workflow, ticket.target, ticket.stop_id, prefill=getattr(exc, "query", None) or query)


def render_header(workflow: CaptureWorkflow, settings: Settings) -> None:
    store = workflow.store
    st.title("🗺️ ROTA EXPRESS")
    if not settings.has_credentials and settings.geocoder == "gemini":
        st.warning("Chave da API Gemini não configurada. A leitura de etiquetas está desativada.")
    col_clear, col_sort = st.columns(2)
    with col_clear:
        if st.button("🗑️ Limpar tudo"):
            st.session_state["confirm_clear"] = True
        if st.session_state.get("confirm_clear"):
            if st.button("Confirmar limpeza"):
                store.clear_all()
                st.session_state["confirm_clear"] = False
    with col_sort:
        if st.button("🔄 Ordenar por distância"):
            try:
                resequence_store(store, workflow.tracker.latest)
            except NoOriginAvailable:
                st.info("Sinal de GPS ainda não disponível. Aguardando posição…")
    origin = store.origin
    label = origin.address if origin is not None else "Minha Localização (GPS)"
    st.markdown(f"**Ponto de Partida:** {label}")
    col_set, col_gps = st.columns(2)
    with col_set:
        if st.button("Definir partida"):
            open_entry(workflow, Target.ORIGIN)
    with col_gps:
        if origin is not None and st.button("Usar localização atual do GPS"):
            store.set_origin(None)


def render_live_location(workflow: CaptureWorkflow) -> None:
    """Sidebar stand-in for the device positioning capability."""
    tracker = workflow.tracker
    with st.sidebar:
        st.subheader("Posição atual (GPS)")
        latest = tracker.latest
        lat = st.number_input("Latitude", value=latest.lat if latest else 0.0, format="%.6f")
        lng = st.number_input("Longitude", value=latest.lng if latest else 0.0, format="%.6f")
        if st.button("Atualizar posição"):
            fix = coordinate_or_none(lat, lng)
            if fix is None or not tracker.update(fix):
                st.error("Coordenadas inválidas.")
        if tracker.error is not None:
            st.error("Permissão de localização negada.")
        elif tracker.latest is None:
            st.caption("Aguardando posição…")


def render_capture(workflow: CaptureWorkflow) -> None:
    col_add, col_scan = st.columns([1, 3])
    with col_add:
        if st.button("➕ Digitar"):
            open_entry(workflow, Target.STOP)
    with col_scan:
        scanning = st.toggle("📷 Escanear etiqueta", key="scanning")
    if not scanning:
        return
    photo = st.camera_input("Fotografe a etiqueta")
    if photo is None:
        return
    # camera_input keeps returning the same photo on every rerun
    photo_id = getattr(photo, "file_id", None) or hash(photo.getvalue())
    if st.session_state.get("last_photo") == photo_id:
        return
    st.session_state["last_photo"] = photo_id
    try:
        ticket = workflow.begin(Target.STOP)
    except ResolutionInProgress as exc:
        st.warning(str(exc))
        return
    st.session_state["ticket"] = ticket
    try:
        with st.spinner("Processando imagem…"):
            decision = workflow.resolve_image(ticket, photo.getvalue())
    except (ResolutionFailure, CaptureUnavailable) as exc:
        handle_failure(workflow, ticket, exc)
        return
    if isinstance(decision, FallbackManualEntry) and not decision.raw_text:
        st.warning("Não conseguimos ler a etiqueta. Tente digitar o endereço.")
    handle_decision(workflow, ticket, decision)


def render_manual_entry(workflow: CaptureWorkflow) -> None:
    ticket: Optional[Ticket] = st.session_state.get("ticket")
    if not st.session_state.get("show_manual") or ticket is None:
        return
    titles = {Target.ORIGIN: "Definir Partida", Target.STOP: "Novo Endereço", Target.EDIT: "Editar Endereço"}
    with st.form("manual_entry"):
        st.markdown(f"#### {titles[ticket.target]}")
        text = st.text_input("Endereço", value=st.session_state.get("manual_input", ""), placeholder="Rua, Número, Bairro...")
        col_back, col_ok = st.columns(2)
        with col_back:
            back = st.form_submit_button("Voltar")
        with col_ok:
            confirm = st.form_submit_button("Confirmar")
    if back:
        close_entry(workflow)
        st.rerun()
    if confirm and text.strip():
        try:
            with st.spinner("Buscando endereço…"):
                decision = workflow.resolve_text(ticket, text)
        except ResolutionFailure as exc:
            handle_failure(workflow, ticket, exc, query=text)
            return
        handle_decision(workflow, ticket, decision)


def render_candidates(workflow: CaptureWorkflow) -> None:
    prompt: Optional[PromptUser] = st.session_state.get("prompt")
    ticket: Optional[Ticket] = st.session_state.get("ticket")
    if prompt is None or ticket is None:
        return
    st.markdown("#### Vários endereços encontrados")
    labels = [c.address for c in prompt.candidates]
    index = st.radio("Escolha o endereço correto", range(len(labels)), format_func=lambda i: labels[i])
    col_back, col_ok = st.columns(2)
    with col_back:
        if st.button("Cancelar"):
            close_entry(workflow)
            st.rerun()
    with col_ok:
        if st.button("Usar este endereço"):
            workflow.choose(ticket, index)
            st.session_state.pop("prompt", None)
            st.session_state.pop("ticket", None)
            st.rerun()


def render_stops(workflow: CaptureWorkflow) -> None:
    store = workflow.store
    stops = display_order(store.stops)
    if not stops:
        st.info("Nenhuma entrega adicionada")
        return
    origin = effective_origin(store.origin, workflow.tracker.latest)
    distances = distances_from(origin, stops)
    for stop in stops:
        with st.container(border=True):
            col_order, col_addr, col_done = st.columns([1, 6, 2])
            with col_order:
                st.markdown(f"**{stop.order}**")
            with col_addr:
                text = f"~~{stop.address}~~" if stop.is_completed else stop.address
                if stop.id in distances:
                    text += f"  \n{distances[stop.id]:.1f} km"
                st.markdown(text)
            with col_done:
                label = "↩️ Reabrir" if stop.is_completed else "✅ Entregue"
                if st.button(label, key=f"toggle_{stop.id}"):
                    store.toggle_status(stop.id)
                    st.rerun()
            links = navigation_links(stop.coordinate)
            col_waze, col_maps, col_edit, col_del = st.columns(4)
            with col_waze:
                st.link_button("Waze", links["Waze"])
            with col_maps:
                st.link_button("Maps", links["Maps"])
            with col_edit:
                if st.button("Editar", key=f"edit_{stop.id}"):
                    open_entry(workflow, Target.EDIT, stop.id, prefill=stop.address)
                    st.rerun()
            with col_del:
                if st.button("Excluir", key=f"delete_{stop.id}"):
                    store.remove_stop(stop.id)
                    st.rerun()
    with st.expander("Mapa"):
        folium_static(create_folium_map(stops, origin), width=700, height=450)


def main():
    st.set_page_config(page_title="Rota Express", layout="centered")
    settings = get_settings()
    workflow = get_workflow()
    render_live_location(workflow)
    render_header(workflow, settings)
    render_capture(workflow)
    render_manual_entry(workflow)
    render_candidates(workflow)
    render_stops(workflow)


if __name__ == "__main__":
    main()
