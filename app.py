import streamlit as st
import streamlit.components.v1 as components
import pandas as pd
import matplotlib.pyplot as plt
import io
import os
import logging
from fan_logic import (
    GeoPoint,
    WindData,
    FiringSolution,
    WeaponSelection,
    FanError,
    WorkbookError,
    TRAJECTORY_MODES,
    WORKBOOK_FILE,
    EXPORT_WORKBOOK_FILE,
    RESOLUTION_POLICIES,
    MAX_RANGE_M,
    MAX_OFFSET_DEG,
    get_policy,
    compute_fan,
    format_met_preview,
    fan_geojson,
    kml_coordinates,
    generate_kml,
    load_workbook,
    sheet_to_2d,
    preview_sheet_name,
    filter_table,
    weapon_profiles_from_sheets,
    pick_default_weapon,
    review_pairs,
    build_export_rows,
    export_workbook,
    fetch_current_weather,
    plot_fan_interactive,
    plot_fan,
    build_folium_map,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

STEPS = ["Firing Point", "Weapon", "MET", "Review & Compute"]

DEFAULT_INPUTS = {
    "lat": 51.0, "lon": -1.8,
    "az": 0.0, "left": 10.0, "right": 10.0, "depth": 6000.0,
    "weapon": "", "nature": "HE", "charge": 1, "mode": "LA",
    "range": 0.0, "qe": 0.0,
    "temp": 15.0, "press": 1013.25,
    "wind_dir": 0.0, "wind_spd": 0.0, "met_scale": 1.0,
    "policy": "fixed",
}

# --- Session Helpers ---

def init_state():
    if 'step' not in st.session_state:
        st.session_state['step'] = 0
    if 'inputs' not in st.session_state:
        st.session_state['inputs'] = dict(DEFAULT_INPUTS)
    if 'sheets' not in st.session_state:
        reload_workbook()

def reload_workbook():
    st.session_state['sheets'] = {}
    st.session_state['status'] = ("", "")
    if not os.path.exists(WORKBOOK_FILE):
        st.session_state['status'] = (f"Failed to auto-load workbook: {WORKBOOK_FILE} not found in app folder", "bad")
        return
    try:
        sheets = load_workbook(WORKBOOK_FILE)
    except WorkbookError as e:
        st.session_state['status'] = (f"Failed to auto-load workbook: {e}", "bad")
        return
    st.session_state['sheets'] = sheets
    st.session_state['status'] = (f"Loaded workbook: {preview_sheet_name(sheets.keys())}", "ok")

def show_status():
    msg, level = st.session_state.get('status', ("", ""))
    if not msg:
        return
    if level == "ok":
        st.success(msg)
    elif level == "bad":
        st.error(msg)
    else:
        st.info(msg)

def current_solution(inp) -> FiringSolution:
    return FiringSolution(
        origin=GeoPoint(inp['lat'], inp['lon']),
        azimuth=inp['az'],
        left_offset=inp['left'],
        right_offset=inp['right'],
        min_range=inp['range'],
        max_range=inp['depth'],
        wind=WindData(inp['wind_dir'], inp['wind_spd'], inp['met_scale']),
    )

def current_selection(inp) -> WeaponSelection:
    return WeaponSelection(
        weapon=inp['weapon'], nature=inp['nature'], charge=inp['charge'], mode=inp['mode'],
        nominal_range=inp['range'], qe=inp['qe'], temperature=inp['temp'], pressure=inp['press'],
    )

def render_dots():
    step = st.session_state['step']
    dots = " ".join("●" if i == step else "○" for i in range(len(STEPS)))
    st.markdown(f"**Step {step + 1}/{len(STEPS)}: {STEPS[step]}** &nbsp; {dots}")

# --- Wizard Steps ---

def step_firing_point(inp):
    st.subheader("Step 1: Firing Point & Fan Geometry")

    input_mode = st.radio("Input Format", ["Decimal Lat/Lon", "Military Grid (MGRS)"], horizontal=True)
    if input_mode == "Decimal Lat/Lon":
        c_lat, c_lon = st.columns(2)
        inp['lat'] = c_lat.number_input("Latitude", value=float(inp['lat']), format="%.6f", step=0.0001)
        inp['lon'] = c_lon.number_input("Longitude", value=float(inp['lon']), format="%.6f", step=0.0001)
    else:
        mgrs_str = st.text_input("MGRS String", "30U WB 85000 50000")
        try:
            import mgrs
            lat, lon = mgrs.MGRS().toLatLon(mgrs_str.replace(" ", ""))
            st.success(f"✅ Converted: **{lat:.6f}, {lon:.6f}**")
            inp['lat'], inp['lon'] = float(lat), float(lon)
        except ImportError:
            st.error("⚠️ MGRS Library not installed. Please use Lat/Lon.")
        except Exception as e:
            st.error(f"Invalid MGRS String: {e}")

    c1, c2 = st.columns(2)
    with c1:
        inp['az'] = st.number_input("Azimuth (° from North)", 0.0, 360.0, float(inp['az']))
        inp['depth'] = st.number_input("Fan Depth / Max Range (m)", min_value=0.0, max_value=MAX_RANGE_M,
                                       value=min(float(inp['depth']), MAX_RANGE_M))
    with c2:
        inp['left'] = st.number_input("Left Offset (°)", min_value=0.0, max_value=MAX_OFFSET_DEG,
                                      value=min(float(inp['left']), MAX_OFFSET_DEG))
        inp['right'] = st.number_input("Right Offset (°)", min_value=0.0, max_value=MAX_OFFSET_DEG,
                                       value=min(float(inp['right']), MAX_OFFSET_DEG))

    names = list(RESOLUTION_POLICIES)
    inp['policy'] = st.radio("Arc Resolution", names, index=names.index(inp['policy']), horizontal=True,
                             help="Fixed: 1.5° / 75 m per segment. Adaptive: scales with fan width and depth.")

def step_weapon(inp):
    st.subheader("Step 2: Weapon")
    sheets = st.session_state['sheets']
    profiles = weapon_profiles_from_sheets(sheets.keys())

    c1, c2, c3 = st.columns(3)
    inp['nature'] = c1.selectbox("Nature", ["HE", "IM"], index=["HE", "IM"].index(inp['nature']))
    inp['charge'] = c2.number_input("Charge", 1, 7, int(inp['charge']))
    inp['mode'] = c3.selectbox("Mode", TRAJECTORY_MODES, index=TRAJECTORY_MODES.index(inp['mode']))

    options = ["Auto (use Nature + Charge)"] + profiles
    default = pick_default_weapon(profiles, inp['nature'], inp['charge'], inp['weapon'])
    choice = st.selectbox("Weapon Profile", options, index=options.index(default) if default in options else 0)
    inp['weapon'] = "" if choice == options[0] else choice
    if not profiles:
        st.warning("⚠️ No weapon sheets found in the workbook.")

    c4, c5 = st.columns(2)
    inp['range'] = c4.number_input("Nominal Range / Min Range (m)", min_value=0.0, max_value=MAX_RANGE_M,
                                  value=min(float(inp['range']), MAX_RANGE_M))
    inp['qe'] = c5.number_input("QE (mil)", value=float(inp['qe']))

def step_met(inp):
    st.subheader("Step 3: MET")

    if st.button("🌦️ Sync Weather (Open-Meteo)"):
        try:
            w = fetch_current_weather(inp['lat'], inp['lon'])
        except FanError as e:
            st.session_state['status'] = (str(e), "bad")
        else:
            if w.temperature is not None: inp['temp'] = w.temperature
            if w.pressure is not None: inp['press'] = w.pressure
            if w.wind_speed is not None: inp['wind_spd'] = w.wind_speed
            if w.wind_direction is not None: inp['wind_dir'] = w.wind_direction
            st.session_state['status'] = (f"Weather synced @ {inp['lat']:.4f}, {inp['lon']:.4f}", "ok")
        st.rerun()

    c1, c2 = st.columns(2)
    with c1:
        inp['temp'] = st.number_input("Temperature (°C)", value=float(inp['temp']))
        inp['press'] = st.number_input("Pressure (hPa)", value=float(inp['press']))
    with c2:
        inp['wind_dir'] = st.number_input("Wind From (°)", 0.0, 360.0, float(inp['wind_dir']))
        inp['wind_spd'] = st.number_input("Wind Speed (m/s)", min_value=0.0, value=float(inp['wind_spd']))
    inp['met_scale'] = st.number_input("MET Scale", min_value=0.0, value=float(inp['met_scale']), step=0.1,
                                       help="Calibration factor for the simplified MET correction.")

def step_review(inp):
    st.subheader("Step 4: Review & Compute")
    pairs = review_pairs(current_solution(inp), current_selection(inp))
    st.table(pd.DataFrame(pairs, columns=["Field", "Value"]).astype(str))

    if st.button("Compute Safety Fan", type="primary", use_container_width=True):
        try:
            fan = compute_fan(current_solution(inp), policy=get_policy(inp['policy']), mode=inp['mode'])
        except FanError as e:
            st.session_state['fan'] = None
            st.session_state['status'] = (f"Compute failed: {e}", "bad")
        else:
            st.session_state['fan'] = fan
            st.session_state['status'] = (f"Computed fan: {fan.point_count} pts", "ok")
        st.rerun()

    fan = st.session_state.get('fan')
    if fan:
        show_results(fan, pairs)

def show_results(fan, pairs):
    st.text_input("MET Preview", format_met_preview(fan.correction), disabled=True)

    fig_geo = plot_fan_interactive(fan)
    if fig_geo:
        st.plotly_chart(fig_geo, use_container_width=True)

    components.html(build_folium_map(fan).get_root().render(), height=520)

    st.subheader("Export")
    c1, c2, c3, c4 = st.columns(4)
    c1.download_button("📥 GeoJSON", fan_geojson(fan), "safety_fan.geojson", "application/geo+json",
                       use_container_width=True)
    c2.download_button("📥 KML", generate_kml(fan), "safety_fan.kml", "application/vnd.google-earth.kml+xml",
                       use_container_width=True)

    sheets = st.session_state['sheets']
    if sheets:
        buf = io.BytesIO()
        export_workbook(sheets, build_export_rows(pairs, fan), buf)
        c3.download_button("📥 XLSX", buf.getvalue(), EXPORT_WORKBOOK_FILE,
                           "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                           use_container_width=True)
    else:
        c3.button("📥 XLSX", disabled=True, help="No workbook loaded", use_container_width=True)

    png = io.BytesIO()
    fig = plot_fan(fan)
    fig.savefig(png, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    c4.download_button("📥 PNG", png.getvalue(), "safety_fan.png", "image/png", use_container_width=True)

    with st.expander("Geometry (debug)"):
        st.code(fan_geojson(fan, indent=2), language="json")
        st.caption("KML coordinates")
        st.code(kml_coordinates(fan.coords), language="text")

# --- Ballistic Table ---

def table_tab():
    st.header("Ballistic Data")
    if st.button("🔄 Reload Workbook"):
        reload_workbook()
        st.rerun()

    sheets = st.session_state['sheets']
    name = preview_sheet_name(sheets.keys())
    if name is None:
        st.info("No data.")
        return

    table = filter_table(sheet_to_2d(sheets[name]), st.text_input("Search", ""))
    if len(table) < 1:
        st.info("No data.")
        return
    width = max(len(r) for r in table)
    hdr = []
    for i, h in enumerate(table[0] + [""] * (width - len(table[0]))):
        label = str(h) or f"#{i + 1}"
        hdr.append(label if label not in hdr else f"{label} ({i + 1})") # columns must be unique
    rows = [r + [""] * (width - len(r)) for r in table[1:]]
    st.caption(f"Sheet: {name}")
    st.dataframe(pd.DataFrame(rows, columns=hdr).astype(str), use_container_width=True, hide_index=True)

# --- Main ---

def main_app():
    init_state()
    inp = st.session_state['inputs']

    st.header("SAFETY FAN CALCULATOR")
    show_status()

    tab1, tab2 = st.tabs(["Fan Wizard", "Ballistic Data"])

    with tab1:
        render_dots()
        step = st.session_state['step']
        [step_firing_point, step_weapon, step_met, step_review][step](inp)

        st.divider()
        c_back, c_next = st.columns(2)
        if c_back.button("◀ Back", disabled=step == 0, use_container_width=True):
            st.session_state['step'] = step - 1
            st.rerun()
        if step < len(STEPS) - 1 and c_next.button("Next ▶", use_container_width=True):
            st.session_state['step'] = step + 1
            st.rerun()

    with tab2:
        table_tab()

# --- Execution Flow ---

st.set_page_config(page_title="Safety Fan Calculator", layout="wide")
main_app()
