"""
Grafana OTLP Metrics Exporter
==============================

Pushes SLA compliance metrics to Grafana Cloud via OTLP.

Metrics exported:
- sla_tickets_total: Tickets counted in the latest breach snapshot
- sla_overdue_total: Tickets past their resolution target
- sla_met_percent: Share of counted tickets within SLA
- sla_overdue_by_priority: Overdue tickets per priority bucket
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx

from ticketflow.config import settings
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _attributes(values: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{"key": k, "value": {"stringValue": str(v)}} for k, v in values.items()]


def _gauge(name: str, unit: str, description: str, data_points: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "name": name,
        "unit": unit,
        "description": description,
        "gauge": {"dataPoints": data_points},
    }


class GrafanaOTLPExporter:
    """
    Export SLA metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) format for metrics.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._transport = transport
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def build_breach_payload(self, report) -> Dict[str, Any]:
        """
        Build the OTLP payload for a breach report.

        Args:
            report: BreachReport from the SLA aggregator
        """
        timestamp_ns = int(time.time() * 1_000_000_000)
        base = _attributes({"service": settings.app_name})

        def point(value, attributes=None, as_double=False):
            key = "asDouble" if as_double else "asInt"
            return {
                key: value,
                "timeUnixNano": timestamp_ns,
                "attributes": base + _attributes(attributes or {}),
            }

        metrics = [
            _gauge("sla_tickets_total", "1", "Tickets counted in the breach snapshot",
                   [point(report.total)]),
            _gauge("sla_overdue_total", "1", "Tickets past their resolution target",
                   [point(report.overdue_count)]),
            _gauge("sla_met_percent", "%", "Share of counted tickets within SLA",
                   [point(round(report.sla_met_percent, 2), as_double=True)]),
            _gauge("sla_overdue_by_priority", "1", "Overdue tickets per priority bucket",
                   [point(bucket.overdue, {"priority": name})
                    for name, bucket in report.per_priority.items()]),
        ]

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": _attributes({
                            "service.name": settings.app_name,
                            "service.version": settings.app_version,
                            "deployment.environment": settings.environment,
                        })
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def export_breach_report(self, report) -> bool:
        """
        Export breach snapshot gauges to Grafana.

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        payload = self.build_breach_payload(report)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e), "url": self._url}
            )
            return False

        if response.status_code in (200, 202):
            logger.info(
                "SLA metrics exported to Grafana successfully",
                extra={
                    "total": report.total,
                    "overdue": report.overdue_count,
                    "status_code": response.status_code
                }
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> Optional[GrafanaOTLPExporter]:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
