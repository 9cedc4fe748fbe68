"""
Streamlit app for AutoFarm.
Shows the simulated readings of each unit and the latest alert firings.
"""

import logging
from datetime import datetime

import altair as alt
import pandas as pd
import pytz
import streamlit as st

from pyautofarm.alerts import AlertHistoryLog
from pyautofarm.config import settings
from pyautofarm.database import DatabaseService
from pyautofarm.models import SensorKind
from pyautofarm.readings import ReadingStore

logger = logging.getLogger("AutoFarm")

SENSOR_LABELS = {
    SensorKind.HUMIDITY: "Humidity (%)",
    SensorKind.TEMPERATURE: "Temperature (°C)",
    SensorKind.LIGHTING: "Lighting (%)",
    SensorKind.CO2: "CO2 (ppm)",
    SensorKind.PH: "pH",
}


def setup_page():
    """Configure Streamlit page settings"""
    st.set_page_config(
        page_title="AutoFarm Monitoring",
        page_icon="🌱",
        layout="wide",
        initial_sidebar_state="expanded",
    )


@st.cache_resource
def get_database() -> DatabaseService:
    return DatabaseService()


def sensor_chart(df: pd.DataFrame, sensor: SensorKind):
    """Line chart of one sensor's history"""
    df = df.copy()
    df["time"] = df["time"].dt.tz_convert(settings.timezone)
    return (
        alt.Chart(df)
        .mark_line(point=True)
        .encode(
            x=alt.X("time:T", title=None),
            y=alt.Y("value:Q", title=SENSOR_LABELS[sensor], scale=alt.Scale(zero=False)),
            tooltip=[alt.Tooltip("time:T", format="%H:%M:%S"), "value:Q"],
        )
        .properties(height=220)
    )


def history_table(history: AlertHistoryLog, limit: int) -> pd.DataFrame:
    rows = [
        {
            "time": entry.timestamp,
            "alert": entry.alert_name,
            "unit": entry.unit_id,
            "value": entry.triggered_value,
            "action": entry.action_taken,
        }
        for entry in history.recent(limit)
    ]
    df = pd.DataFrame(rows, columns=["time", "alert", "unit", "value", "action"])
    if not df.empty:
        df["time"] = (
            pd.to_datetime(df["time"]).dt.tz_localize("UTC").dt.tz_convert(settings.timezone)
        )
    return df


def main():
    """Main function for the Streamlit app"""
    setup_page()
    st.title("AutoFarm Monitoring")

    database = get_database()
    store = ReadingStore(database)
    history = AlertHistoryLog(database)

    try:
        units = database.list_units()
    except Exception as e:
        logger.error(f"Failed to load units: {e}")
        st.error(f"Error loading units: {e}")
        return

    if not units:
        st.info("No units yet. Create one through the REST API.")
        return

    names = {unit.id: f"{unit.name} (#{unit.id})" for unit in units}
    unit_id = st.sidebar.selectbox("Unit", list(names), format_func=names.get)
    limit = st.sidebar.slider("Readings", 10, settings.max_history, settings.max_history)

    st.caption(
        "Last refresh: "
        + datetime.now(pytz.timezone(settings.timezone)).strftime("%Y-%m-%d %H:%M:%S")
    )

    current = store.current_readings().get(unit_id, {})
    for column, sensor in zip(st.columns(len(SensorKind)), SensorKind):
        column.metric(SENSOR_LABELS[sensor], current.get(sensor.value, "–"))

    for sensor in SensorKind:
        df = store.history_frame(unit_id, sensor, limit)
        if df.empty:
            continue
        st.subheader(SENSOR_LABELS[sensor])
        st.altair_chart(sensor_chart(df, sensor), use_container_width=True)

    st.subheader("Alert History")
    table = history_table(history, settings.alert_history_limit)
    if table.empty:
        st.write("No alerts fired yet.")
    else:
        st.dataframe(table, use_container_width=True, hide_index=True)


if __name__ == "__main__":
    main()
