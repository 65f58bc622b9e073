"""Content service client: users, posts, comments, media and discovery."""
from __future__ import annotations
from typing import Any

from sangha_api.client.base import MB, BaseApiClient
from sangha_api.config import RequestOptions
from sangha_api.errors import validation_error
from sangha_api.models import ApiResponse, Comment, MediaFile, PaginatedResponse, Post, User

AVATAR_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
MEDIA_TYPES = (
    "image/jpeg", "image/png", "image/gif", "image/webp",
    "video/mp4", "video/webm",
    "audio/mp3", "audio/wav", "audio/ogg",
    "application/pdf",
)
MEDIA_QUALITIES = ("low", "medium", "high", "original")
POST_SORTS = ("latest", "popular", "trending", "oldest")
EXPORT_FORMATS = ("json", "csv")


class ContentServiceClient(BaseApiClient):
    service_name = "content"

    # ── Users ─────────────────────────────────────────────────────────

    async def get_current_user(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/users/me", None, self._cached(30.0, options), model=User)

    async def get_user_by_id(self, user_id: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._get(f"/users/{user_id}", None, self._cached(60.0, options), model=User)

    async def get_user_by_username(self, username: str, options: RequestOptions | None = None) -> ApiResponse:
        username = self._require_id(username, "username")
        return await self._get(f"/users/username/{username}", None, self._cached(60.0, options), model=User)

    async def update_current_user(self, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        return await self._patch("/users/me", self._clean_updates(updates), options, model=User)

    async def update_user_avatar(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        """Upload a new avatar image (max 5MB)."""
        self._require_file(content, mime_type, max_bytes=5 * MB, allowed_types=AVATAR_TYPES)
        return await self._upload("/users/me/avatar", filename, content, mime_type, options=options)

    async def get_user_posts(
        self,
        user_id: str,
        *,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        user_id = self._require_id(user_id, "user_id")
        params = {"status": status, "page": page, "limit": limit}
        return await self._get_paginated(f"/users/{user_id}/posts", params, self._cached(30.0, options), model=Post)

    async def get_user_stats(self, user_id: str, options: RequestOptions | None = None) -> ApiResponse:
        user_id = self._require_id(user_id, "user_id")
        return await self._get(f"/users/{user_id}/stats", None, self._cached(300.0, options))

    # ── Posts ─────────────────────────────────────────────────────────

    async def get_posts(
        self,
        *,
        category: str | None = None,
        tags: list[str] | None = None,
        type: str | None = None,
        status: str | None = None,
        author_id: str | None = None,
        sort: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        """List posts. ``tags`` are sent comma-joined."""
        if sort is not None:
            self._require_choice(sort, POST_SORTS, "sort")
        params = {
            "category": category,
            "tags": ",".join(tags) if tags else None,
            "type": type,
            "status": status,
            "authorId": author_id,
            "sort": sort,
            "page": page,
            "limit": limit,
        }
        return await self._get_paginated("/posts", params, self._cached(30.0, options), model=Post)

    async def get_post_by_id(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._get(f"/posts/{post_id}", None, self._cached(60.0, options), model=Post)

    async def get_post_by_slug(self, slug: str, options: RequestOptions | None = None) -> ApiResponse:
        slug = self._require_id(slug, "slug")
        return await self._get(f"/posts/slug/{slug}", None, self._cached(60.0, options), model=Post)

    async def create_post(self, post: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        """Create a post. ``title``, ``content`` and ``category`` are required."""
        body = dict(post)
        body["title"] = self._require_text(post.get("title"), "title")
        body["content"] = self._require_text(post.get("content"), "content")
        body["category"] = self._require_text(post.get("category"), "category")
        body["tags"] = [t.strip() for t in post.get("tags") or [] if t.strip()]
        return await self._post("/posts", body, options, model=Post)

    async def update_post(self, post_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._patch(f"/posts/{post_id}", self._clean_updates(updates), options, model=Post)

    async def delete_post(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._delete(f"/posts/{post_id}", None, options)

    async def publish_post(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._patch(f"/posts/{post_id}", {"status": "published"}, options, model=Post)

    async def archive_post(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._patch(f"/posts/{post_id}", {"status": "archived"}, options, model=Post)

    async def toggle_post_like(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._post(f"/posts/{post_id}/like", None, options)

    async def toggle_post_bookmark(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._post(f"/posts/{post_id}/bookmark", None, options)

    async def share_post(
        self,
        post_id: str,
        platform: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._post(f"/posts/{post_id}/share", {"platform": platform}, options)

    async def get_post_analytics(self, post_id: str, options: RequestOptions | None = None) -> ApiResponse:
        post_id = self._require_id(post_id, "post_id")
        return await self._get(f"/posts/{post_id}/analytics", None, self._cached(300.0, options))

    # ── Comments ──────────────────────────────────────────────────────

    async def get_post_comments(
        self,
        post_id: str,
        *,
        sort: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        post_id = self._require_id(post_id, "post_id")
        params = {"sort": sort, "page": page, "limit": limit}
        return await self._get_paginated(
            f"/posts/{post_id}/comments", params, self._cached(30.0, options), model=Comment
        )

    async def get_comment_by_id(self, comment_id: str, options: RequestOptions | None = None) -> ApiResponse:
        comment_id = self._require_id(comment_id, "comment_id")
        return await self._get(f"/comments/{comment_id}", None, self._cached(60.0, options), model=Comment)

    async def create_comment(
        self,
        post_id: str,
        content: str,
        parent_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        body = {
            "postId": self._require_text(post_id, "post_id"),
            "content": self._require_text(content, "content"),
            "parentId": parent_id,
        }
        return await self._post("/comments", body, options, model=Comment)

    async def update_comment(self, comment_id: str, content: str, options: RequestOptions | None = None) -> ApiResponse:
        comment_id = self._require_id(comment_id, "comment_id")
        body = {"content": self._require_text(content, "content")}
        return await self._patch(f"/comments/{comment_id}", body, options, model=Comment)

    async def delete_comment(self, comment_id: str, options: RequestOptions | None = None) -> ApiResponse:
        comment_id = self._require_id(comment_id, "comment_id")
        return await self._delete(f"/comments/{comment_id}", None, options)

    async def toggle_comment_like(self, comment_id: str, options: RequestOptions | None = None) -> ApiResponse:
        comment_id = self._require_id(comment_id, "comment_id")
        return await self._post(f"/comments/{comment_id}/like", None, options)

    async def get_comment_replies(
        self,
        comment_id: str,
        *,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        comment_id = self._require_id(comment_id, "comment_id")
        params = {"page": page, "limit": limit}
        return await self._get_paginated(
            f"/comments/{comment_id}/replies", params, self._cached(30.0, options), model=Comment
        )

    # ── Media ─────────────────────────────────────────────────────────

    async def get_media_files(
        self,
        *,
        type: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "page": page, "limit": limit}
        return await self._get_paginated("/media", params, self._cached(60.0, options), model=MediaFile)

    async def get_media_file_by_id(self, media_id: str, options: RequestOptions | None = None) -> ApiResponse:
        media_id = self._require_id(media_id, "media_id")
        return await self._get(f"/media/{media_id}", None, self._cached(300.0, options), model=MediaFile)

    async def upload_media_file(
        self,
        filename: str,
        content: bytes,
        mime_type: str,
        *,
        alt_text: str = "",
        post_id: str = "",
        quality: str = "high",
        generate_thumbnail: bool = True,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        """Upload a media file (max 10MB, images/video/audio/pdf only)."""
        self._require_file(content, mime_type, max_bytes=10 * MB, allowed_types=MEDIA_TYPES)
        self._require_choice(quality, MEDIA_QUALITIES, "quality")
        form = {
            "altText": alt_text,
            "postId": post_id,
            "quality": quality,
            "generateThumbnail": "true" if generate_thumbnail else "false",
        }
        return await self._upload(
            "/media/upload", filename, content, mime_type, form=form, options=options, model=MediaFile
        )

    async def update_media_file(self, media_id: str, updates: dict[str, Any], options: RequestOptions | None = None) -> ApiResponse:
        media_id = self._require_id(media_id, "media_id")
        return await self._patch(f"/media/{media_id}", self._clean_updates(updates), options, model=MediaFile)

    async def delete_media_file(self, media_id: str, options: RequestOptions | None = None) -> ApiResponse:
        media_id = self._require_id(media_id, "media_id")
        return await self._delete(f"/media/{media_id}", None, options)

    async def get_media_usage(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/media/usage", None, self._cached(60.0, options))

    # ── Discovery ─────────────────────────────────────────────────────

    async def get_feed(
        self,
        *,
        type: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        params = {"type": type, "page": page, "limit": limit}
        return await self._get_paginated("/feed", params, self._cached(30.0, options), model=Post)

    async def get_trending_posts(
        self,
        *,
        timeframe: str | None = None,
        limit: int | None = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        params = {"timeframe": timeframe, "limit": limit}
        return await self._get("/posts/trending", params, self._cached(300.0, options), model=list[Post])

    async def get_popular_categories(self, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/categories/popular", None, self._cached(600.0, options))

    async def get_trending_tags(self, limit: int = 20, options: RequestOptions | None = None) -> ApiResponse:
        return await self._get("/tags/trending", {"limit": limit}, self._cached(300.0, options))

    # ── Batch ─────────────────────────────────────────────────────────

    async def bulk_delete_posts(self, post_ids: list[str], options: RequestOptions | None = None) -> ApiResponse:
        post_ids = self._require_items(post_ids, "post_ids")
        return await self._post("/posts/bulk-delete", {"postIds": post_ids}, options)

    async def bulk_update_posts(self, updates: list[dict[str, Any]], options: RequestOptions | None = None) -> ApiResponse:
        """Apply ``[{"id": ..., "updates": {...}}, ...]`` in one call."""
        updates = self._require_items(updates, "updates")
        for index, item in enumerate(updates):
            if not isinstance(item, dict) or not item.get("id"):
                raise validation_error("Each update needs an id", field="updates", index=index)
        return await self._post("/posts/bulk-update", {"updates": updates}, options)

    async def export_user_content(self, format: str = "json", options: RequestOptions | None = None) -> ApiResponse:
        self._require_choice(format, EXPORT_FORMATS, "format")
        return await self._post("/users/me/export", {"format": format}, options)
