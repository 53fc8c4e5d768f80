# scripts/dashboard.py
# Streamlit leaderboard for the clan war stats
# --------------------------------------------
# Runs locally:  streamlit run scripts/dashboard.py
# Requires: streamlit, pandas, the warstats package (pip install -e .[dashboard])

from __future__ import annotations
import sys
import datetime
from pathlib import Path
import streamlit as st

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from warstats.config import ConfigError, load_config
from warstats.service import WarStatsService
from warstats.utils.logger import get_logger

LOG_DIR = REPO_ROOT / "data" / "logs"
ROLE_LABELS = {"member": "Member", "elder": "Elder", "coleader": "Co-Leader", "leader": "Leader"}

# ---------- HELPERS ----------
@st.cache_resource(show_spinner=False)
def get_service(config_path: str | None) -> WarStatsService:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    get_logger(LOG_DIR / "dashboard.log")
    return WarStatsService(load_config(config_path or None))

def tail_file(path: Path, lines: int = 200) -> str:
    try:
        with path.open("r", encoding="utf-8", errors="ignore") as f:
            content = f.readlines()
        return "".join(content[-lines:])
    except OSError as e:
        return f"[could not read log] {e}"

def styled(df, labels):
    view = df.copy()
    view["role"] = view["role"].map(ROLE_LABELS).fillna(view["role"])
    view = view.rename(columns={
        "current_rank": "Rank", "name": "Player", "role": "Role",
        "promotion_ready": "Promotion ready", "joined_recently": "New",
        "demotion_risk": "Demotion risk", "decks_used": "Decks",
    })
    columns = ["Rank", "Player", "Role", "Decks", *labels, "Promotion ready", "Demotion risk", "New"]
    return view[columns]

# ---------- UI ----------
st.set_page_config(page_title="Clan War Stats", page_icon="⚔️", layout="wide")
st.title("⚔️ Clan War Stats")

config_path = st.sidebar.text_input("Config file (optional)", value="")
include_former = st.sidebar.checkbox("Include former members", value=False)

try:
    service = get_service(config_path)
except ConfigError as e:
    st.error(f"Configuration error: {e}")
    st.stop()

if st.sidebar.button("🔄 Refresh now"):
    with st.spinner("Refreshing…"):
        ok = service.refresh()
    if ok:
        st.sidebar.success("Refreshed.")
    else:
        st.sidebar.error("Refresh failed, showing last known data.")

tabs = st.tabs(["Leaderboard", "Logs"])

# --- Leaderboard ---
with tabs[0]:
    df, labels = service.leaderboard(include_former=include_former)
    for notice in service.notices():
        st.warning(f"⚠️ {notice}")

    snapshot = service.cell.get()
    if snapshot is not None:
        c1, c2, c3 = st.columns(3)
        c1.metric("Members", len(snapshot.members_current))
        c2.metric("Weeks stored", len(snapshot.weeks))
        c3.metric("Last refresh", snapshot.refreshed_at.astimezone().strftime("%Y-%m-%d %H:%M"))

    if df.empty:
        st.info("No members to show yet.")
    else:
        # st.dataframe columns are sortable by clicking the header
        st.dataframe(styled(df, labels), use_container_width=True, hide_index=True)
        st.caption(f"Weeks end {service.config['BOUNDARY_TIME']} {service.config['BOUNDARY_TIMEZONE']}. "
                   f"N/A = before the player joined; blank = no data reported.")

# --- Logs ---
with tabs[1]:
    st.subheader("Recent Logs")
    st.code(tail_file(LOG_DIR / "dashboard.log", lines=400))
    st.caption(f"Rendered {datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
