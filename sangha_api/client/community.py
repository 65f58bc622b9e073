"""Community service client: groups, membership, events, notifications and social graph."""
from __future__ import annotations
from typing import Any

from sangha_api.client.base import MB, BaseApiClient, check_date_order
from sangha_api.config import RequestOptions
from sangha_api.errors import validation_error
from sangha_api.models import ApiResponse, Event, Group, Notification, PaginatedResponse, User

GROUP_TYPES = ("public", "private", "secret")
IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
INVITATION_RESPONSES = ("accept", "decline")
MEMBER_ROLES = ("member", "moderator")
REQUEST_ACTIONS = ("approve", "reject")
RSVP_RESPONSES = ("attending", "maybe", "not_attending")


class CommunityServiceClient(BaseApiClient):
    service_name = "community"

    # ── Groups ────────────────────────────────────────────────────────

    async def get_groups(
        self,
        *,
        type: str | None = None,
        category: str | None = None,
        search: str | None = None,
        sort: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "category": category, "search": search, "sort": sort, "page": page, "limit": limit}
        return await self._get_paginated("/groups", params, self._cached(60.0, options), model=Group)

    async def get_group_by_id(self, group_id: str, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._get(f"/groups/{group_id}", None, self._cached(300.0, options), model=Group)

    async def get_group_by_slug(self, slug: str, options: RequestOptions | None = None) -> ApiResponse:
        slug = self._require_id(slug, "slug")
        return await self._get(f"/groups/slug/{slug}", None, self._cached(300.0, options), model=Group)

    async def create_group(self, group: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Create a group. ``name``, ``description`` and ``category`` are required."""
        body = dict(group)
        body["name"] = self._require_text(group.get("name"), "name")
        body["description"] = self._require_text(group.get("description"), "description")
        body["category"] = self._require_text(group.get("category"), "category")
        body["type"] = self._require_choice(group.get("type", "public"), GROUP_TYPES, "type")
        return await self._post("/groups", body, options, model=Group)

    async def update_group(self, group_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        cleaned = self._clean_updates(updates)
        if "type" in cleaned:
            self._require_choice(cleaned["type"], GROUP_TYPES, "type")
        return await self._patch(f"/groups/{group_id}", cleaned, options, model=Group)

    async def delete_group(self, group_id: str, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._delete(f"/groups/{group_id}", None, options)

    async def upload_group_cover(
        self,
        group_id: str,
        filename: str,
        content: bytes,
        mime_type: str,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        self._require_file(content, mime_type, max_bytes=5 * MB, allowed_types=IMAGE_TYPES)
        return await self._upload(f"/groups/{group_id}/cover", filename, content, mime_type, options=options)

    async def upload_group_avatar(
        self,
        group_id: str,
        filename: str,
        content: bytes,
        mime_type: str,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        self._require_file(content, mime_type, max_bytes=2 * MB, allowed_types=IMAGE_TYPES)
        return await self._upload(f"/groups/{group_id}/avatar", filename, content, mime_type, options=options)

    # ── Membership ────────────────────────────────────────────────────

    async def get_group_members(
        self,
        group_id: str,
        *,
        role: str | None = None,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        group_id = self._require_id(group_id, "group_id")
        params = {"role": role, "status": status, "page": page, "limit": limit}
        return await self._get_paginated(
            f"/groups/{group_id}/members", params, self._cached(60.0, options), model=User
        )

    async def join_group(self, group_id: str, message: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._post(f"/groups/{group_id}/join", {"message": message}, options)

    async def leave_group(self, group_id: str, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._post(f"/groups/{group_id}/leave", None, options)

    async def invite_to_group(
        self,
        group_id: str,
        user_id: str,
        message: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        user_id = self._require_text(user_id, "user_id")
        return await self._post(f"/groups/{group_id}/invite", {"userId": user_id, "message": message}, options)

    async def respond_to_group_invitation(
        self,
        invitation_id: str,
        response: str,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        invitation_id = self._require_id(invitation_id, "invitation_id")
        self._require_choice(response, INVITATION_RESPONSES, "response")
        return await self._post(f"/groups/invitations/{invitation_id}/respond", {"response": response}, options)

    async def remove_member(
        self,
        group_id: str,
        user_id: str,
        reason: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        user_id = self._require_id(user_id, "user_id")
        return await self._delete(f"/groups/{group_id}/members/{user_id}", {"reason": reason}, options)

    async def update_member_role(
        self,
        group_id: str,
        user_id: str,
        role: str,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        user_id = self._require_id(user_id, "user_id")
        self._require_choice(role, MEMBER_ROLES, "role")
        return await self._patch(f"/groups/{group_id}/members/{user_id}", {"role": role}, options)

    async def get_pending_requests(self, group_id: str, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._get(f"/groups/{group_id}/requests", None, self._cached(30.0, options))

    async def handle_membership_request(
        self,
        request_id: str,
        action: str,
        message: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        request_id = self._require_id(request_id, "request_id")
        self._require_choice(action, REQUEST_ACTIONS, "action")
        return await self._post(f"/groups/requests/{request_id}/{action}", {"message": message}, options)

    async def get_group_stats(self, group_id: str, options: RequestOptions | None = None) -> ApiResponse:
        group_id = self._require_id(group_id, "group_id")
        return await self._get(f"/groups/{group_id}/stats", None, self._cached(300.0, options))

    # ── Events ────────────────────────────────────────────────────────

    async def get_events(
        self,
        *,
        type: str | None = None,
        status: str | None = None,
        group_id: str | None = None,
        organizer_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        location: str | None = None,
        tags: list[str] | None = None,
        sort: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {
            "type": type,
            "status": status,
            "groupId": group_id,
            "organizerId": organizer_id,
            "startDate": start_date,
            "endDate": end_date,
            "location": location,
            "tags": ",".join(tags) if tags else None,
            "sort": sort,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated("/events", params, self._cached(60.0, options), model=Event)

    async def get_event_by_id(self, event_id: str, options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        return await self._get(f"/events/{event_id}", None, self._cached(300.0, options), model=Event)

    async def get_event_by_slug(self, slug: str, options: RequestOptions | None = None) -> ApiResponse:
        slug = self._require_id(slug, "slug")
        return await self._get(f"/events/slug/{slug}", None, self._cached(300.0, options), model=Event)

    async def create_event(self, event: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Create an event.

        ``title``, ``description``, ``startDate``, ``endDate`` and ``timezone``
        are required; dates are ISO-8601 and the end must follow the start.
        """
        body = dict(event)
        body["title"] = self._require_text(event.get("title"), "title")
        body["description"] = self._require_text(event.get("description"), "description")
        body["startDate"] = self._require_text(event.get("startDate"), "start_date")
        body["endDate"] = self._require_text(event.get("endDate"), "end_date")
        body["timezone"] = self._require_text(event.get("timezone"), "timezone")
        check_date_order(body["startDate"], body["endDate"])
        body["tags"] = [t.strip() for t in event.get("tags") or [] if t.strip()]
        return await self._post("/events", body, options, model=Event)

    async def update_event(self, event_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        if updates.get("startDate") and updates.get("endDate"):
            check_date_order(updates["startDate"], updates["endDate"])
        return await self._patch(f"/events/{event_id}", self._clean_updates(updates), options, model=Event)

    async def delete_event(self, event_id: str, options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        return await self._delete(f"/events/{event_id}", None, options)

    async def cancel_event(self, event_id: str, reason: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        body = {"status": "cancelled", "cancellationReason": reason}
        return await self._patch(f"/events/{event_id}", body, options, model=Event)

    async def rsvp_to_event(self, event_id: str, response: str, options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        self._require_choice(response, RSVP_RESPONSES, "response")
        return await self._post(f"/events/{event_id}/rsvp", {"response": response}, options)

    async def get_event_attendees(
        self,
        event_id: str,
        *,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        event_id = self._require_id(event_id, "event_id")
        params = {"status": status, "page": page, "limit": limit}
        return await self._get_paginated(
            f"/events/{event_id}/attendees", params, self._cached(30.0, options), model=User
        )

    async def check_in_attendee(self, event_id: str, user_id: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        body = {"userId": user_id} if user_id else None
        return await self._post(f"/events/{event_id}/checkin", body, options)

    async def invite_to_event(
        self,
        event_id: str,
        user_id: str,
        message: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        event_id = self._require_id(event_id, "event_id")
        user_id = self._require_text(user_id, "user_id")
        return await self._post(f"/events/{event_id}/invite", {"userId": user_id, "message": message}, options)

    async def get_user_upcoming_events(self, user_id: str | None = None, options: RequestOptions | None = None) -> ApiResponse:
        """Upcoming events for ``user_id``, or for the signed-in user."""
        if user_id is None:
            path = "/events/my-upcoming"
        else:
            path = f"/users/{self._require_id(user_id, 'user_id')}/events/upcoming"
        return await self._get(path, None, self._cached(60.0, options), model=list[Event])

    # ── Notifications ─────────────────────────────────────────────────

    async def get_notifications(
        self,
        *,
        type: str | None = None,
        is_read: bool | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "isRead": is_read, "page": page, "limit": limit}
        return await self._get_paginated(
            "/notifications", params, self._cached(30.0, options), model=Notification
        )

    async def get_notification_by_id(self, notification_id: str, options: RequestOptions | None = None) -> ApiResponse:
        notification_id = self._require_id(notification_id, "notification_id")
        return await self._get(f"/notifications/{notification_id}", None, options, model=Notification)

    async def mark_notification_as_read(self, notification_id: str, options: RequestOptions | None = None) -> ApiResponse:
        notification_id = self._require_id(notification_id, "notification_id")
        return await self._patch(f"/notifications/{notification_id}", {"isRead": True}, options, model=Notification)

    async def mark_all_notifications_as_read(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._post("/notifications/mark-all-read", None, options)

    async def delete_notification(self, notification_id: str, options: RequestOptions | None = None) -> ApiResponse:
        notification_id = self._require_id(notification_id, "notification_id")
        return await self._delete(f"/notifications/{notification_id}", None, options)

    async def get_unread_notifications_count(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/notifications/unread-count", None, self._cached(30.0, options))

    async def update_notification_preferences(self, preferences: dict[str, bool], options: RequestOptions | None = None) -> ApiResponse:
        if not preferences:
            raise validation_error("Preferences are required", field="preferences")
        return await self._patch("/notifications/preferences", dict(preferences), options)

    async def get_notification_preferences(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/notifications/preferences", None, self._cached(300.0, options))

    # ── Social ────────────────────────────────────────────────────────

    async def get_user_groups(
        self,
        user_id: str | None = None,
        *,
        role: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        if user_id is None:
            path = "/groups/my-groups"
        else:
            path = f"/users/{self._require_id(user_id, 'user_id')}/groups"
        params = {"role": role, "page": page, "limit": limit}
        return await self._get_paginated(path, params, self._cached(60.0, options), model=Group)

    async def get_suggested_groups(self, limit: int = 10, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/groups/suggestions", {"limit": limit}, self._cached(300.0, options))

    async def follow_user(self, user_id: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._post(f"/users/{user_id}/follow", None, options)

    async def unfollow_user(self, user_id: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._post(f"/users/{user_id}/unfollow", None, options)

    async def get_user_followers(
        self,
        user_id: str,
        *,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        user_id = self._require_id(user_id, "user_id")
        params = {"page": page, "limit": limit}
        return await self._get_paginated(
            f"/users/{user_id}/followers", params, self._cached(60.0, options), model=User
        )

    async def get_user_following(
        self,
        user_id: str,
        *,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        user_id = self._require_id(user_id, "user_id")
        params = {"page": page, "limit": limit}
        return await self._get_paginated(
            f"/users/{user_id}/following", params, self._cached(60.0, options), model=User
        )

    async def get_activity_feed(
        self,
        *,
        type: str | None = None,
        user_id: str | None = None,
        group_id: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "userId": user_id, "groupId": group_id, "page": page, "limit": limit}
        return await self._get_paginated("/activity", params, self._cached(30.0, options))

    # ── Discovery ─────────────────────────────────────────────────────

    async def get_popular_groups(
        self,
        *,
        category: str | None = None,
        timeframe: str | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"category": category, "timeframe": timeframe, "limit": limit}
        return await self._get("/groups/popular", params, self._cached(300.0, options), model=list[Group])

    async def get_upcoming_events(
        self,
        *,
        location: str | None = None,
        category: str | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"location": location, "category": category, "limit": limit}
        return await self._get("/events/upcoming", params, self._cached(60.0, options), model=list[Event])

    async def get_group_categories(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/groups/categories", None, self._cached(600.0, options))
