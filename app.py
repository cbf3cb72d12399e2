import logging
import os
import socket
from datetime import datetime, timezone

import plotly.graph_objects as go
import psutil
from flask import Flask, jsonify, render_template

app = Flask(__name__)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
if not isinstance(logging.getLevelName(LOG_LEVEL), int):
    LOG_LEVEL = "INFO"
app.logger.setLevel(LOG_LEVEL)

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "5000"))
USAGE_THRESHOLD = float(os.environ.get("USAGE_THRESHOLD", "80"))
CPU_SAMPLE_INTERVAL = float(os.environ.get("CPU_SAMPLE_INTERVAL", "1"))

HIGH_USAGE_MESSAGE = "High CPU or Memory Detected, scale up!!!"


def collect_metrics():
    """Take a point-in-time snapshot of host utilization."""
    boot_time = datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc)
    return {
        "hostname": socket.gethostname(),
        "cpu_percent": psutil.cpu_percent(interval=CPU_SAMPLE_INTERVAL),
        "memory_percent": psutil.virtual_memory().percent,
        "disk_percent": psutil.disk_usage("/").percent,
        "boot_time": boot_time.isoformat(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def usage_message(cpu, memory, threshold=USAGE_THRESHOLD):
    if cpu > threshold or memory > threshold:
        return HIGH_USAGE_MESSAGE
    return None


def gauge(value, title, threshold=USAGE_THRESHOLD, include_plotlyjs="cdn"):
    fig = go.Figure(
        go.Indicator(
            mode="gauge+number",
            value=value,
            title={"text": title},
            gauge={
                "axis": {"range": [0, 100]},
                "bar": {"color": "crimson" if value > threshold else "seagreen"},
                "threshold": {
                    "line": {"color": "red", "width": 4},
                    "thickness": 0.75,
                    "value": threshold,
                },
            },
        )
    )
    fig.update_layout(height=320, margin={"t": 60, "b": 20, "l": 30, "r": 30})
    return fig.to_html(full_html=False, include_plotlyjs=include_plotlyjs)


def _snapshot():
    metrics = collect_metrics()
    message = usage_message(metrics["cpu_percent"], metrics["memory_percent"])
    if message:
        app.logger.warning(
            "usage above %s%%: cpu=%s memory=%s",
            USAGE_THRESHOLD,
            metrics["cpu_percent"],
            metrics["memory_percent"],
        )
    return metrics, message


@app.get("/")
def index():
    metrics, message = _snapshot()
    return render_template(
        "index.html",
        hostname=metrics["hostname"],
        cpu_gauge=gauge(metrics["cpu_percent"], "CPU Utilization (%)"),
        memory_gauge=gauge(
            metrics["memory_percent"], "Memory Utilization (%)", include_plotlyjs=False
        ),
        message=message,
    )


@app.get("/api/metrics")
def api_metrics():
    metrics, message = _snapshot()
    return jsonify(message=message, **metrics)


@app.get("/health")
def health():
    return jsonify(status="ok")


@app.errorhandler(psutil.Error)
@app.errorhandler(OSError)
def metrics_unavailable(exc):
    app.logger.error("metrics collection failed: %s", exc)
    return jsonify(error=f"metrics unavailable: {exc}"), 503


@app.errorhandler(404)
def not_found(exc):
    return jsonify(error="not found"), 404


def main():
    app.run(host=HOST, port=PORT)


if __name__ == "__main__":
    main()
