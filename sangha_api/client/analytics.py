"""Analytics service client: metrics, dashboards, reports, monitoring and exports."""
from __future__ import annotations
import logging
import math
from collections.abc import Mapping
from typing import Any

from sangha_api.client.base import BaseApiClient, check_date_order
from sangha_api.config import RequestOptions
from sangha_api.errors import ApiError, ErrorCode, validation_error
from sangha_api.models import (
    AnalyticsReport,
    ApiResponse,
    BatchItemError,
    BatchResult,
    Metric,
    PaginatedResponse,
)

logger = logging.getLogger("sangha_api.analytics")

REPORT_TYPES = ("user", "content", "engagement", "performance")
REPORT_FORMATS = ("json", "csv", "pdf")
EXPORT_FORMATS = ("json", "csv", "xlsx")
AGGREGATIONS = ("sum", "avg", "min", "max", "count")

SERVER_REJECTED = "SERVER_REJECTED"


def _metric_value(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise validation_error("Metric value must be a number", field="value")
    return value


class AnalyticsServiceClient(BaseApiClient):
    service_name = "analytics"

    # ── Metrics ───────────────────────────────────────────────────────

    def _metric_body(self, metric: Any, *, require_category: bool) -> dict[str, Any]:
        if not isinstance(metric, dict):
            raise validation_error("Metric must be a mapping", field="metric")
        body = dict(metric)
        body["name"] = self._require_text(metric.get("name"), "name")
        body["value"] = _metric_value(metric.get("value"))
        if require_category:
            body["category"] = self._require_text(metric.get("category"), "category")
        elif isinstance(metric.get("category"), str):
            body["category"] = metric["category"].strip()
        tags = metric.get("tags") or {}
        if not isinstance(tags, Mapping):
            raise validation_error("Metric tags must be a mapping", field="tags")
        body["tags"] = dict(tags)
        return body

    async def record_metric(self, metric: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Record one metric. ``name``, numeric ``value`` and ``category`` are required."""
        body = self._metric_body(metric, require_category=True)
        return await self._post("/metrics", body, options, model=Metric)

    async def record_metrics(self, metrics: list[dict[str, Any]], options: RequestOptions | None = None) -> BatchResult:
        """Record a batch of metrics, allowing partial success.

        Items that fail local validation never reach the network; the rest go
        out in one ``POST /metrics/batch``. Every failure, local or reported by
        the server, appears in ``errors`` under the item's index in
        ``metrics``. A failure of the batch request itself raises.
        """
        items = self._require_items(metrics, "metrics")
        errors: list[BatchItemError] = []
        sent: list[tuple[int, dict[str, Any]]] = []
        for index, metric in enumerate(items):
            try:
                sent.append((index, self._metric_body(metric, require_category=False)))
            except ApiError as exc:
                errors.append(BatchItemError(index=index, code=exc.code, error=exc.message))

        recorded = 0
        if sent:
            response = await self._post("/metrics/batch", {"metrics": [body for _, body in sent]}, options)
            result = response.data if response.data is not None else {}
            if not isinstance(result, dict):
                raise ApiError(
                    ErrorCode.PARSE_ERROR,
                    "Unexpected batch response",
                    details={"service": self.service_name, "endpoint": "/metrics/batch"},
                )
            rejected = result.get("errors") or []
            for item in rejected:
                position = item.get("index") if isinstance(item, dict) else None
                if isinstance(position, bool) or not isinstance(position, int) or not 0 <= position < len(sent):
                    raise ApiError(
                        ErrorCode.PARSE_ERROR,
                        "Batch response references an unknown item",
                        details={"service": self.service_name, "index": position},
                    )
                errors.append(
                    BatchItemError(
                        index=sent[position][0],
                        code=item.get("code") or SERVER_REJECTED,
                        error=item.get("error") or item.get("message") or "Rejected by server",
                    )
                )
            reported = result.get("recorded")
            if isinstance(reported, int) and not isinstance(reported, bool):
                recorded = reported
            else:
                recorded = len(sent) - len(rejected)
        else:
            logger.debug("No valid metrics in batch of %d, nothing sent", len(items))

        errors.sort(key=lambda e: e.index)
        return BatchResult(recorded=recorded, failed=len(errors), errors=errors)

    async def get_metrics(
        self,
        *,
        name: str | None = None,
        category: str | None = None,
        tags: dict[str, str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        sort: str | None = None,
        order: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        """List metrics. Each tag filter is sent as a ``tag_<key>`` parameter."""
        params: dict[str, Any] = {
            "name": name,
            "category": category,
            "startDate": start_date,
            "endDate": end_date,
            "sort": sort,
            "order": order,
            "page": page,
            "limit": limit,
        }
        for key, value in (tags or {}).items():
            params[f"tag_{key}"] = value
        return await self._get_paginated("/metrics", params, self._cached(30.0, options), model=Metric)

    async def get_metric_by_id(self, metric_id: str, options: RequestOptions | None = None) -> ApiResponse:
        metric_id = self._require_id(metric_id, "metric_id")
        return await self._get(f"/metrics/{metric_id}", None, self._cached(60.0, options), model=Metric)

    async def query_metrics(self, query: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Time-series query; needs ``metrics`` plus an ordered ``startDate``/``endDate``."""
        names = query.get("metrics")
        if not isinstance(names, (list, tuple)) or not names:
            raise validation_error("At least one metric name is required", field="metrics")
        check_date_order(query.get("startDate"), query.get("endDate"))
        return await self._post("/metrics/query", dict(query), options)

    async def get_metric_aggregations(
        self,
        metric_name: str,
        *,
        aggregation: str | None = None,
        group_by: list[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        interval: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        metric_name = self._require_id(metric_name, "metric_name")
        if aggregation is not None:
            self._require_choice(aggregation, AGGREGATIONS, "aggregation")
        params = {
            "aggregation": aggregation,
            "groupBy": group_by,
            "startDate": start_date,
            "endDate": end_date,
            "interval": interval,
        }
        return await self._get(f"/metrics/{metric_name}/aggregations", params, self._cached(300.0, options))

    async def get_real_time_metrics(self, categories: list[str] | None = None, options: RequestOptions | None = None) -> ApiResponse:
        params = {"categories": ",".join(categories) if categories else None}
        return await self._get("/metrics/realtime", params, self._cached(10.0, options))

    async def get_live_activity(
        self,
        *,
        types: list[str] | None = None,
        since: str | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"types": types, "since": since, "limit": limit}
        return await self._get("/activity/live", params, self._cached(5.0, options))

    # ── Dashboards ────────────────────────────────────────────────────

    async def get_dashboards(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/dashboards", None, self._cached(60.0, options))

    async def get_dashboard_by_id(self, dashboard_id: str, options: RequestOptions | None = None) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        return await self._get(f"/dashboards/{dashboard_id}", None, self._cached(60.0, options))

    async def create_dashboard(self, dashboard: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        body = dict(dashboard)
        body["name"] = self._require_text(dashboard.get("name"), "name")
        return await self._post("/dashboards", body, options)

    async def update_dashboard(self, dashboard_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        return await self._patch(f"/dashboards/{dashboard_id}", self._clean_updates(updates), options)

    async def delete_dashboard(self, dashboard_id: str, options: RequestOptions | None = None) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        return await self._delete(f"/dashboards/{dashboard_id}", None, options)

    async def add_widget(self, dashboard_id: str, widget: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        if not widget.get("type"):
            raise validation_error("Widget type and title are required", field="type")
        body = dict(widget)
        body["title"] = self._require_text(widget.get("title"), "title")
        return await self._post(f"/dashboards/{dashboard_id}/widgets", body, options)

    async def update_widget(
        self,
        dashboard_id: str,
        widget_id: str,
        updates: dict[str, Any],
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        widget_id = self._require_id(widget_id, "widget_id")
        return await self._patch(
            f"/dashboards/{dashboard_id}/widgets/{widget_id}", self._clean_updates(updates), options
        )

    async def remove_widget(self, dashboard_id: str, widget_id: str, options: RequestOptions | None = None) -> ApiResponse:
        dashboard_id = self._require_id(dashboard_id, "dashboard_id")
        widget_id = self._require_id(widget_id, "widget_id")
        return await self._delete(f"/dashboards/{dashboard_id}/widgets/{widget_id}", None, options)

    # ── Reports ───────────────────────────────────────────────────────

    async def get_reports(
        self,
        *,
        type: str | None = None,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "status": status, "page": page, "limit": limit}
        return await self._get_paginated("/reports", params, self._cached(60.0, options), model=AnalyticsReport)

    async def get_report_by_id(self, report_id: str, options: RequestOptions | None = None) -> ApiResponse:
        report_id = self._require_id(report_id, "report_id")
        return await self._get(f"/reports/{report_id}", None, self._cached(60.0, options), model=AnalyticsReport)

    async def create_report(self, report: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Create a report definition. ``config`` must be a non-empty mapping."""
        body = dict(report)
        body["name"] = self._require_text(report.get("name"), "name")
        body["type"] = self._require_choice(report.get("type"), REPORT_TYPES, "type")
        config = report.get("config")
        if not isinstance(config, dict) or not config:
            raise validation_error("Report configuration is required", field="config")
        if isinstance(report.get("description"), str):
            body["description"] = report["description"].strip()
        return await self._post("/reports", body, options, model=AnalyticsReport)

    async def update_report(self, report_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        report_id = self._require_id(report_id, "report_id")
        cleaned = self._clean_updates(updates)
        if "type" in cleaned:
            self._require_choice(cleaned["type"], REPORT_TYPES, "type")
        return await self._patch(f"/reports/{report_id}", cleaned, options, model=AnalyticsReport)

    async def delete_report(self, report_id: str, options: RequestOptions | None = None) -> ApiResponse:
        report_id = self._require_id(report_id, "report_id")
        return await self._delete(f"/reports/{report_id}", None, options)

    async def generate_report(
        self,
        report_id: str,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        format: str | None = None,
        email: bool | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        report_id = self._require_id(report_id, "report_id")
        if format is not None:
            self._require_choice(format, REPORT_FORMATS, "format")
        if start_date and end_date:
            check_date_order(start_date, end_date)
        body = {"startDate": start_date, "endDate": end_date, "format": format, "email": email}
        return await self._post(
            f"/reports/{report_id}/generate", {k: v for k, v in body.items() if v is not None}, options
        )

    async def get_report_status(self, job_id: str, options: RequestOptions | None = None) -> ApiResponse:
        job_id = self._require_id(job_id, "job_id")
        return await self._get(f"/reports/jobs/{job_id}", None, self._cached(5.0, options))

    async def get_scheduled_reports(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/reports/scheduled", None, self._cached(60.0, options))

    # ── Monitoring ────────────────────────────────────────────────────

    async def get_system_performance(
        self,
        *,
        timeframe: str | None = None,
        metrics: list[str] | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"timeframe": timeframe, "metrics": metrics}
        return await self._get("/monitoring/performance", params, self._cached(30.0, options))

    async def get_health_status(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/monitoring/health", None, self._cached(10.0, options))

    async def get_error_tracking(
        self,
        *,
        severity: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {
            "severity": severity,
            "startDate": start_date,
            "endDate": end_date,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated("/monitoring/errors", params, self._cached(30.0, options))

    # ── Behaviour ─────────────────────────────────────────────────────

    async def track_event(self, event: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        body = dict(event)
        body["name"] = self._require_text(event.get("name"), "name")
        return await self._post("/events/track", body, options)

    async def get_user_behavior_analytics(
        self,
        *,
        user_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"userId": user_id, "startDate": start_date, "endDate": end_date}
        return await self._get("/analytics/behavior", params, self._cached(300.0, options))

    async def get_conversion_analytics(
        self,
        *,
        funnel: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"funnel": funnel, "startDate": start_date, "endDate": end_date}
        return await self._get("/analytics/conversions", params, self._cached(300.0, options))

    # ── Exports ───────────────────────────────────────────────────────

    async def export_metrics(self, export: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        names = export.get("metrics")
        if not isinstance(names, (list, tuple)) or not names:
            raise validation_error("At least one metric name is required", field="metrics")
        check_date_order(export.get("startDate"), export.get("endDate"))
        self._require_choice(export.get("format"), EXPORT_FORMATS, "format")
        return await self._post("/exports/metrics", dict(export), options)

    async def get_export_status(self, export_id: str, options: RequestOptions | None = None) -> ApiResponse:
        export_id = self._require_id(export_id, "export_id")
        return await self._get(f"/exports/{export_id}", None, self._cached(5.0, options))
