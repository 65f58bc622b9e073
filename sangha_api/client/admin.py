"""Admin service client: user management, moderation, settings and maintenance."""
from __future__ import annotations
import json
import re
from typing import Any

from sangha_api.client.base import MB, BaseApiClient, check_date_order
from sangha_api.config import RequestOptions
from sangha_api.errors import validation_error
from sangha_api.models import ApiResponse, ModerationAction, PaginatedResponse, User

USER_ROLES = ("user", "moderator", "admin")
MODERATION_TYPES = ("warn", "suspend", "ban", "delete", "approve")
MODERATION_TARGETS = ("user", "post", "comment", "group")
PRIORITIES = ("low", "medium", "high", "critical")
CACHE_TYPES = ("all", "api", "page", "user")
AUDIT_FORMATS = ("json", "csv")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
MAX_UPLOAD_BYTES = 100 * MB


class AdminServiceClient(BaseApiClient):
    service_name = "admin"

    # ── Users ─────────────────────────────────────────────────────────

    async def get_users(
        self,
        *,
        role: str | None = None,
        status: str | None = None,
        search: str | None = None,
        sort: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"role": role, "status": status, "search": search, "sort": sort, "page": page, "limit": limit}
        return await self._get_paginated("/users", params, self._cached(30.0, options), model=User)

    async def get_user_by_id(
        self,
        user_id: str,
        include_history: bool = False,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        params = {"includeHistory": include_history}
        return await self._get(f"/users/{user_id}", params, self._cached(60.0, options), model=User)

    async def update_user(self, user_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        if updates.get("role") is not None:
            self._require_choice(updates["role"], USER_ROLES, "role")
        return await self._patch(f"/users/{user_id}", self._clean_updates(updates), options, model=User)

    async def block_user(
        self,
        user_id: str,
        reason: str,
        duration: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        body = {"reason": self._require_text(reason, "reason"), "duration": duration}
        return await self._post(f"/users/{user_id}/block", body, options)

    async def unblock_user(self, user_id: str, reason: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        body = {"reason": reason.strip() if reason else None}
        return await self._post(f"/users/{user_id}/unblock", body, options)

    async def delete_user(
        self,
        user_id: str,
        *,
        reason: str | None = None,
        hard_delete: bool = False,
        transfer_to_user_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        body = {
            "reason": reason,
            "hardDelete": hard_delete,
            "transferContent": transfer_to_user_id is not None,
            "transferToUserId": transfer_to_user_id,
        }
        return await self._post(f"/users/{user_id}/delete", body, options)

    async def restore_user(self, user_id: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._post(f"/users/{user_id}/restore", None, options)

    async def reset_user_password(self, user_id: str, send_email: bool = True, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._post(f"/users/{user_id}/reset-password", {"sendEmail": send_email}, options)

    async def impersonate_user(self, user_id: str, reason: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        body = {"reason": self._require_text(reason, "reason")}
        return await self._post(f"/users/{user_id}/impersonate", body, options)

    async def end_impersonation(self, session_id: str, options: RequestOptions | None = None) -> ApiResponse:
        session_id = self._require_id(session_id, "session_id")
        return await self._post(f"/impersonation/{session_id}/end", None, options)

    # ── Moderation ────────────────────────────────────────────────────

    async def get_moderation_queue(
        self,
        *,
        type: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {
            "type": type,
            "status": status,
            "priority": priority,
            "assignedTo": assigned_to,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated("/moderation/queue", params, self._cached(30.0, options))

    async def take_moderation_action(self, action: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Apply a moderation action to a user, post, comment or group."""
        body = dict(action)
        self._require_choice(action.get("type"), MODERATION_TYPES, "type")
        self._require_choice(action.get("targetType"), MODERATION_TARGETS, "target_type")
        body["targetId"] = self._require_text(action.get("targetId"), "target_id")
        body["reason"] = self._require_text(action.get("reason"), "reason")
        return await self._post("/moderation/actions", body, options, model=ModerationAction)

    async def get_moderation_history(
        self,
        *,
        moderator_id: str | None = None,
        target_type: str | None = None,
        target_id: str | None = None,
        type: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {
            "moderatorId": moderator_id,
            "targetType": target_type,
            "targetId": target_id,
            "type": type,
            "startDate": start_date,
            "endDate": end_date,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated(
            "/moderation/history", params, self._cached(60.0, options), model=ModerationAction
        )

    async def assign_moderation_item(
        self,
        item_id: str,
        moderator_id: str,
        priority: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        item_id = self._require_id(item_id, "item_id")
        moderator_id = self._require_text(moderator_id, "moderator_id")
        if priority is not None:
            self._require_choice(priority, PRIORITIES, "priority")
        body = {"moderatorId": moderator_id, "priority": priority}
        return await self._post(f"/moderation/queue/{item_id}/assign", body, options)

    async def get_moderation_stats(
        self,
        *,
        timeframe: str | None = None,
        moderator_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"timeframe": timeframe, "moderatorId": moderator_id}
        return await self._get("/moderation/stats", params, self._cached(300.0, options))

    # ── Settings ──────────────────────────────────────────────────────

    async def get_system_settings(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/settings", None, self._cached(300.0, options))

    async def update_system_settings(self, settings: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Patch system settings after checking the values that can lock admins out."""
        general = settings.get("general") or {}
        email = general.get("adminEmail")
        if email and not EMAIL_RE.match(email):
            raise validation_error("Invalid admin email format", field="general.adminEmail")
        authentication = settings.get("authentication") or {}
        min_length = authentication.get("passwordMinLength")
        if min_length is not None and min_length < MIN_PASSWORD_LENGTH:
            raise validation_error(
                f"Password minimum length must be at least {MIN_PASSWORD_LENGTH} characters",
                field="authentication.passwordMinLength",
            )
        content = settings.get("content") or {}
        max_size = content.get("maxFileSize")
        if max_size is not None and max_size > MAX_UPLOAD_BYTES:
            raise validation_error("Maximum file size cannot exceed 100MB", field="content.maxFileSize")
        return await self._patch("/settings", {"settings": settings}, options)

    async def reset_settings_to_defaults(self, category: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        return await self._post("/settings/reset", {"category": category}, options)

    async def export_settings(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._post("/settings/export", None, options)

    async def import_settings(self, content: bytes, options: RequestOptions | None = None) -> ApiResponse:
        """Upload a settings export. ``content`` must be a JSON object."""
        self._require_file(content, "application/json", max_bytes=MAX_UPLOAD_BYTES)
        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise validation_error("Settings file must be valid JSON", field="file") from exc
        if not isinstance(parsed, dict):
            raise validation_error("Settings file must contain a JSON object", field="file")
        return await self._upload("/settings/import", "settings.json", bytes(content), "application/json", options=options)

    # ── Overview ──────────────────────────────────────────────────────

    async def get_system_overview(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/overview", None, self._cached(30.0, options))

    async def get_user_analytics(
        self,
        *,
        timeframe: str | None = None,
        group_by: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"timeframe": timeframe, "groupBy": group_by}
        return await self._get("/analytics/users", params, self._cached(300.0, options))

    async def get_content_analytics(
        self,
        *,
        timeframe: str | None = None,
        content_type: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"timeframe": timeframe, "contentType": content_type}
        return await self._get("/analytics/content", params, self._cached(300.0, options))

    # ── Maintenance ───────────────────────────────────────────────────

    async def create_backup(
        self,
        *,
        include_media: bool | None = None,
        description: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        body = {"includeMedia": include_media, "description": description}
        return await self._post("/backups/create", {k: v for k, v in body.items() if v is not None}, options)

    async def get_backups(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/backups", None, self._cached(60.0, options))

    async def restore_backup(
        self,
        backup_id: str,
        *,
        skip_validation: bool = False,
        email: bool = False,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        backup_id = self._require_id(backup_id, "backup_id")
        body = {"skipValidation": skip_validation, "email": email}
        return await self._post(f"/backups/{backup_id}/restore", body, options)

    async def purge_server_cache(self, type: str = "all", options: RequestOptions | None = None) -> ApiResponse:
        """Ask the server to drop its caches; ``clear_cache()`` clears this client's own."""
        self._require_choice(type, CACHE_TYPES, "type")
        return await self._post("/cache/clear", {"type": type}, options)

    async def run_maintenance(self, tasks: list[str] | None = None, options: RequestOptions | None = None) -> ApiResponse:
        return await self._post("/maintenance/run", {"tasks": tasks}, options)

    async def get_maintenance_status(self, job_id: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        params = {"jobId": job_id} if job_id else None
        return await self._get("/maintenance/status", params, self._cached(10.0, options))

    async def toggle_maintenance_mode(
        self,
        enabled: bool,
        message: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        return await self._post("/maintenance/toggle", {"enabled": bool(enabled), "message": message}, options)

    # ── Audit ─────────────────────────────────────────────────────────

    async def get_audit_logs(
        self,
        *,
        user_id: str | None = None,
        action: str | None = None,
        resource: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {
            "userId": user_id,
            "action": action,
            "resource": resource,
            "startDate": start_date,
            "endDate": end_date,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated("/audit/logs", params, self._cached(60.0, options))

    async def export_audit_logs(
        self,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        format: str = "json",
        user_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        self._require_choice(format, AUDIT_FORMATS, "format")
        if start_date and end_date:
            check_date_order(start_date, end_date)
        body = {"startDate": start_date, "endDate": end_date, "format": format, "userId": user_id}
        return await self._post("/audit/export", {k: v for k, v in body.items() if v is not None}, options)
