from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RuesTabSelectors:
    general: str = "#detail-tabs-tabpane-pestana_general"
    economic: str = "#detail-tabs-tabpane-pestana_economica"
    representative: str = "#detail-tabs-tabpane-pestana_representante"
    economic_tab: str = "#detail-tabs-tab-pestana_economica"
    representative_tab: str = "#detail-tabs-tab-pestana_representante"


@dataclass(frozen=True)
class RuesSelectors:
    """
    rues.org.co search + detail view; selectors may change over time.
    """

    type_selector: str = ".select-type-index"
    id_input: str = 'input[name="search"]'
    # Several copies of the search button exist (desktop/mobile); only the displayed one is clicked.
    submit_button: str = 'button[type="submit"].btn-busqueda'
    submit_spinner: str = "i.spinner-border"
    results: str = ".card-result"
    no_results_message: str = ".mensaje-alerta"
    no_results_text: str = "No se encontraron resultados"
    result_link: str = ".resultado__enlace a"
    card_title: str = ".filtro__titulo"
    field_row: str = ".registroapi"
    field_label: str = ".registroapi__etiqueta"
    field_value: str = ".registroapi__valor"
    legal_representative_text: str = ".legal"
    active_status_text: str = "Activa"
    # SweetAlert2 popups
    alert_container: str = ".swal2-container.swal2-backdrop-show"
    alert_close: str = ".swal2-close"
    tabs: RuesTabSelectors = RuesTabSelectors()
