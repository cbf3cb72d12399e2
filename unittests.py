import importlib
import logging
import os
import unittest
from unittest import mock

import psutil

import app as monitor


def patch_psutil(cpu=12.5, memory=40.0, disk=55.0):
    return mock.patch.multiple(
        "app.psutil",
        cpu_percent=mock.Mock(return_value=cpu),
        virtual_memory=mock.Mock(return_value=mock.Mock(percent=memory)),
        disk_usage=mock.Mock(return_value=mock.Mock(percent=disk)),
        boot_time=mock.Mock(return_value=1700000000.0),
    )


class UsageMessageTest(unittest.TestCase):
    def test_below_threshold(self):
        self.assertIsNone(monitor.usage_message(10, 20, threshold=80))

    def test_value_equal_to_threshold_is_not_high(self):
        self.assertIsNone(monitor.usage_message(80, 80, threshold=80))

    def test_high_cpu(self):
        self.assertEqual(
            monitor.usage_message(81, 20, threshold=80), monitor.HIGH_USAGE_MESSAGE
        )

    def test_high_memory(self):
        self.assertEqual(
            monitor.usage_message(5, 99.9, threshold=80), monitor.HIGH_USAGE_MESSAGE
        )


class CollectMetricsTest(unittest.TestCase):
    def test_snapshot_fields(self):
        with patch_psutil(cpu=33.0, memory=44.0, disk=66.0):
            metrics = monitor.collect_metrics()

        self.assertEqual(metrics["cpu_percent"], 33.0)
        self.assertEqual(metrics["memory_percent"], 44.0)
        self.assertEqual(metrics["disk_percent"], 66.0)
        self.assertTrue(metrics["boot_time"].startswith("2023-11-14T22:13:20"))
        self.assertIn("hostname", metrics)
        self.assertIn("timestamp", metrics)

    def test_cpu_sampled_with_configured_interval(self):
        with patch_psutil():
            monitor.collect_metrics()
            monitor.psutil.cpu_percent.assert_called_once_with(
                interval=monitor.CPU_SAMPLE_INTERVAL
            )


class GaugeTest(unittest.TestCase):
    def test_renders_html_fragment(self):
        html = monitor.gauge(42, "CPU Utilization (%)", threshold=80)
        self.assertNotIn("<html>", html)
        self.assertIn("CPU Utilization (%)", html)
        self.assertIn("seagreen", html)

    def test_over_threshold_uses_alert_color(self):
        html = monitor.gauge(95, "Memory Utilization (%)", threshold=80)
        self.assertIn("crimson", html)


class RoutesTest(unittest.TestCase):
    def setUp(self):
        monitor.app.config["TESTING"] = True
        self.client = monitor.app.test_client()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"status": "ok"})

    def test_api_metrics(self):
        with patch_psutil(cpu=20.0, memory=30.0):
            resp = self.client.get("/api/metrics")

        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["cpu_percent"], 20.0)
        self.assertEqual(body["memory_percent"], 30.0)
        self.assertIsNone(body["message"])

    def test_api_metrics_reports_high_usage(self):
        with patch_psutil(cpu=97.0, memory=30.0):
            with self.assertLogs(monitor.app.logger, level="WARNING"):
                resp = self.client.get("/api/metrics")

        self.assertEqual(resp.get_json()["message"], monitor.HIGH_USAGE_MESSAGE)

    def test_index_renders_gauges(self):
        with patch_psutil(cpu=15.0, memory=25.0):
            resp = self.client.get("/")

        self.assertEqual(resp.status_code, 200)
        page = resp.get_data(as_text=True)
        self.assertIn("CPU Utilization (%)", page)
        self.assertIn("Memory Utilization (%)", page)
        self.assertNotIn(monitor.HIGH_USAGE_MESSAGE, page)

    def test_index_shows_alert(self):
        with patch_psutil(cpu=15.0, memory=91.0):
            resp = self.client.get("/")

        self.assertIn(monitor.HIGH_USAGE_MESSAGE, resp.get_data(as_text=True))

    def test_psutil_failure_is_503(self):
        with patch_psutil():
            monitor.psutil.cpu_percent.side_effect = psutil.AccessDenied()
            resp = self.client.get("/api/metrics")

        self.assertEqual(resp.status_code, 503)
        self.assertIn("metrics unavailable", resp.get_json()["error"])

    def test_os_error_from_psutil_is_503(self):
        with patch_psutil():
            monitor.psutil.boot_time.side_effect = PermissionError("/proc/stat")
            resp = self.client.get("/api/metrics")

        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.mimetype, "application/json")
        self.assertIn("/proc/stat", resp.get_json()["error"])

    def test_index_loads_plotlyjs_once(self):
        with patch_psutil():
            resp = self.client.get("/")

        self.assertEqual(resp.get_data(as_text=True).count("cdn.plot.ly"), 1)

    def test_unknown_route_is_json_404(self):
        resp = self.client.get("/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json(), {"error": "not found"})


class ConfigurationTest(unittest.TestCase):
    def reload_with(self, **env):
        with mock.patch.dict(os.environ):
            for name, value in env.items():
                if value is None:
                    os.environ.pop(name, None)
                else:
                    os.environ[name] = value
            importlib.reload(monitor)
        self.addCleanup(importlib.reload, monitor)

    def test_usage_threshold_from_environment(self):
        self.reload_with(USAGE_THRESHOLD="50")
        self.assertEqual(monitor.USAGE_THRESHOLD, 50.0)
        self.assertEqual(monitor.usage_message(10, 60), monitor.HIGH_USAGE_MESSAGE)

    def test_default_threshold(self):
        self.reload_with(USAGE_THRESHOLD=None)
        self.assertIsNone(monitor.usage_message(10, 60))
        self.assertEqual(monitor.usage_message(10, 81), monitor.HIGH_USAGE_MESSAGE)

    def test_cpu_sample_interval_from_environment(self):
        self.reload_with(CPU_SAMPLE_INTERVAL="0.25")
        with patch_psutil():
            monitor.collect_metrics()
            monitor.psutil.cpu_percent.assert_called_once_with(interval=0.25)

    def test_log_level_from_environment(self):
        self.reload_with(LOG_LEVEL="debug")
        self.assertEqual(monitor.app.logger.level, logging.DEBUG)

    def test_invalid_log_level_falls_back_to_info(self):
        self.reload_with(LOG_LEVEL="verbose")
        self.assertEqual(monitor.app.logger.level, logging.INFO)

    def test_main_leaves_root_logger_alone(self):
        root_handlers = list(logging.getLogger().handlers)
        with mock.patch.object(monitor.app, "run") as run:
            monitor.main()

        run.assert_called_once_with(host=monitor.HOST, port=monitor.PORT)
        self.assertEqual(logging.getLogger().handlers, root_handlers)


if __name__ == "__main__":
    unittest.main()
