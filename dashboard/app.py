"""Streamlit operator dashboard for the Slotwise parking API."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
# Point this to your local FastAPI server
API_BASE_URL = os.getenv("PARKING_API_BASE_URL", "http://127.0.0.1:8000")
GRID_COLUMNS = 5
TYPE_OPTIONS = ["normal", "vip", "handicapped"]

st.set_page_config(
    page_title="Slotwise Parking",
    page_icon="🅿️",
    layout="wide",
)

# ==========================================
# API Helper Functions
# ==========================================
def _request(method: str, path: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
    try:
        response = requests.request(method, f"{API_BASE_URL}{path}", timeout=10, **kwargs)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None


def fetch_page(page: str) -> Optional[Dict[str, Any]]:
    return _request("GET", f"/dashboard/{page}")


def toggle_slot(slot_number: int) -> Optional[Dict[str, Any]]:
    return _request("POST", f"/slots/{slot_number}/toggle")


def set_slot_type(slot_number: int, slot_type: str) -> Optional[Dict[str, Any]]:
    return _request("PUT", f"/slots/{slot_number}/type", json={"type": slot_type})


def set_capacity(total: int) -> Optional[Dict[str, Any]]:
    return _request("PUT", "/capacity", json={"total": total})


def run_search(page: str, query: str) -> Optional[Dict[str, Any]]:
    return _request("POST", "/search", json={"page": page, "query": query})


def send_chat(page: str, message: str) -> Optional[Dict[str, Any]]:
    return _request("POST", "/chat", json={"page": page, "message": message})


def fetch_forecast() -> Optional[Dict[str, Any]]:
    return _request("GET", "/forecast")


def fetch_theme() -> str:
    result = _request("GET", "/theme")
    return result.get("theme", "light") if result else "light"


def save_theme(theme: str) -> None:
    _request("PUT", "/theme", json={"theme": theme})


# ==========================================
# UI Components
# ==========================================
def render_stats(snapshot: Dict[str, Any]) -> None:
    counts = snapshot.get("counts", {})
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Slots", counts.get("total", 0))
    col2.metric("Free", counts.get("empty", 0), delta=f"{counts.get('free_percent', 0)}%")
    col3.metric(
        "Occupied",
        counts.get("occupied", 0),
        delta=f"{counts.get('occupancy_percent', 0)}%",
        delta_color="inverse",
    )
    col4.metric("VIP Free", f"{counts.get('vip_free', 0)} / {counts.get('vip_total', 0)}")
    st.progress(min(100, counts.get("occupancy_percent", 0)) / 100)


def render_grid(snapshot: Dict[str, Any], editable: bool) -> None:
    slots = snapshot.get("slots", [])
    for row_start in range(0, len(slots), GRID_COLUMNS):
        columns = st.columns(GRID_COLUMNS)
        for column, slot in zip(columns, slots[row_start:row_start + GRID_COLUMNS]):
            with column:
                marker = "🟥" if slot["status"] == "occupied" else "🟩"
                title = f"{marker} Slot {slot['slot_number']} · {slot['type_label']}"
                if slot["highlighted"]:
                    st.markdown(f"**:orange[{title}]**")
                else:
                    st.markdown(title)
                st.caption(slot["current_timer"])
                st.caption(slot["previous_timer"])
                if editable:
                    label = "Vacate" if slot["status"] == "occupied" else "Occupy"
                    if st.button(label, key=f"toggle-{slot['slot_number']}"):
                        if toggle_slot(slot["slot_number"]):
                            st.rerun()
                    current_type = slot["type"]
                    chosen = st.selectbox(
                        "Type",
                        TYPE_OPTIONS,
                        index=TYPE_OPTIONS.index(current_type),
                        key=f"type-{slot['slot_number']}",
                        label_visibility="collapsed",
                    )
                    if chosen != current_type and set_slot_type(slot["slot_number"], chosen):
                        st.rerun()


def render_search(page: str, snapshot: Dict[str, Any]) -> None:
    query = st.text_input(
        "Search slots",
        value=snapshot.get("search_query", ""),
        key=f"search-{page}",
        placeholder="Slot 3, empty slots, nearest empty VIP slot",
    )
    if query != snapshot.get("search_query", ""):
        if run_search(page, query) is not None:
            st.rerun()
    st.caption(snapshot.get("search_hint", ""))


def render_forecast() -> None:
    st.subheader("Rush Forecast")
    result = fetch_forecast()
    if not result:
        return
    status = result.get("status")
    if status == "disabled":
        st.info("Forecasts are disabled: no session history is connected.")
        return
    if status == "empty":
        st.info("Not enough parking history to forecast yet.")
        return
    if status == "error":
        st.warning(f"Could not load forecast: {result.get('detail', '')}")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Busiest Hour", result.get("busy_label", "--"))
    col2.metric("Quietest Hour", result.get("empty_label", "--"))
    col3.metric(
        "Rush Now",
        f"{result.get('rush_percent', 0)}%",
        delta=f"{result.get('wait_label', '--')} · {result.get('wait_eta', '')}",
        delta_color="off",
    )
    df = pd.DataFrame(
        {
            "hour": list(range(24)),
            "occupancy": result.get("probabilities", [0.0] * 24),
        }
    ).set_index("hour")
    st.bar_chart(df, use_container_width=True)


def render_chat(page: str) -> None:
    st.subheader("Parking Assistant")
    history_key = f"chat-history-{page}"
    if history_key not in st.session_state:
        st.session_state[history_key] = [
            {
                "role": "assistant",
                "text": "Hi! I’m your parking assistant. Ask me to find empty slots, "
                "VIP spaces, counts, or the nearest spot.",
            }
        ]
    for entry in st.session_state[history_key]:
        with st.chat_message(entry["role"]):
            st.write(entry["text"])

    message = st.chat_input("Ask about parking", key=f"chat-input-{page}")
    if message:
        st.session_state[history_key].append({"role": "user", "text": message})
        reply = send_chat(page, message)
        if reply:
            st.session_state[history_key].append({"role": "assistant", "text": reply["text"]})
        st.rerun()


# ==========================================
# Pages
# ==========================================
def render_admin_page() -> None:
    st.header("🛠️ Admin Console")
    snapshot = fetch_page("admin")
    if not snapshot:
        return

    with st.form("capacity-form"):
        total = st.number_input(
            "Total slots",
            min_value=1,
            max_value=100,
            value=int(snapshot.get("total", 20)),
        )
        if st.form_submit_button("Update capacity"):
            if set_capacity(int(total)):
                st.rerun()

    render_stats(snapshot)
    render_search("admin", snapshot)
    render_grid(snapshot, editable=True)


def render_user_page() -> None:
    st.header("🚗 Find a Spot")
    snapshot = fetch_page("user")
    if not snapshot:
        return

    render_stats(snapshot)
    render_search("user", snapshot)
    grid_col, side_col = st.columns([3, 2])
    with grid_col:
        render_grid(snapshot, editable=False)
    with side_col:
        render_forecast()
        render_chat("user")


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Slotwise Parking")
    st.sidebar.markdown("---")

    page = st.sidebar.radio("Page", ["Admin", "User"])

    st.sidebar.markdown("---")
    theme = fetch_theme()
    dark = st.sidebar.toggle("Dark theme", value=theme == "dark")
    if dark != (theme == "dark"):
        save_theme("dark" if dark else "light")
    st.sidebar.caption(f"API: {API_BASE_URL}")
    if st.sidebar.button("Refresh"):
        st.rerun()

    if page == "Admin":
        render_admin_page()
    else:
        render_user_page()


if __name__ == "__main__":
    main()
