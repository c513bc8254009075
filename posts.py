import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from pydantic import ValidationError as SchemaError

from auth import get_current_user
from database import DocumentStore, serialize
from errors import Forbidden, NotFound, ValidationError
from media import MediaStore, media_type_for
from schemas import DEFAULT_BACKGROUND, Comment, Post, PostCommentCreate, PostUpdate, User, normalize_color

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

USER_FIELDS = tuple(User.model_fields)
LIKER_FIELDS = ("name",)
COMMENTER_FIELDS = ("name", "profile_picture")


def _pick(user: dict, fields) -> dict:
    return {"id": user["id"], **{f: user.get(f) for f in fields if f in user}}


def _first_error(exc: SchemaError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid request")


class PostService:
    def __init__(self, store: DocumentStore, media: MediaStore):
        self.store = store
        self.media = media

    def _get(self, post_id: str) -> dict:
        post = self.store.find_by_id("post", post_id)
        if not post:
            raise NotFound("Post not found")
        return post

    def _comments_for(self, post_ids: List[str]) -> Dict[str, List[dict]]:
        """Derive each post's comment thread, oldest first, leaving replies out."""
        if not post_ids:
            return {}
        docs = self.store.find("comment", {"post": {"$in": post_ids}}, sort=[("created_at", 1)])
        reply_ids = {r for d in docs for r in d.get("replies", [])}
        grouped = defaultdict(list)
        for d in docs:
            if str(d["_id"]) not in reply_ids:
                grouped[d["post"]].append(d)
        return grouped

    @staticmethod
    def _comment_view(doc: dict, users: Dict[str, dict]) -> dict:
        return serialize({
            "_id": doc["_id"],
            "author": _pick(users[doc["author"]], COMMENTER_FIELDS),
            "text": doc["content"],
            "created_at": doc.get("created_at"),
        })

    def _present(self, docs: List[dict]) -> List[dict]:
        """Serialize posts with owner, likes and comment authors populated."""
        comments = self._comments_for([str(d["_id"]) for d in docs])
        user_ids = []
        for d in docs:
            user_ids.append(d["owner"])
            user_ids.extend(d.get("likes", []))
            user_ids.extend(c["author"] for c in comments.get(str(d["_id"]), []))
        users = self.store.resolve_users(user_ids, USER_FIELDS)

        out = []
        for d in docs:
            item = serialize(d)
            item["owner"] = _pick(users[d["owner"]], USER_FIELDS)
            item["likes"] = [_pick(users[u], LIKER_FIELDS) for u in d.get("likes", [])]
            item["comments"] = [self._comment_view(c, users) for c in comments.get(str(d["_id"]), [])]
            out.append(item)
        return out

    def create(
        self,
        user_id: str,
        caption: Optional[str],
        category: Optional[str] = None,
        is_private: Optional[bool] = None,
        allow_comments: Optional[bool] = None,
        text_background_color: Optional[str] = None,
        media_type: Optional[str] = None,
        media: Optional[UploadFile] = None,
    ) -> dict:
        if not caption or not caption.strip():
            raise ValidationError("Caption is required")

        color = DEFAULT_BACKGROUND
        if text_background_color:
            try:
                color = normalize_color(text_background_color)
            except ValueError:
                raise ValidationError("Invalid text background color format")

        # An explicit media_type wins over what the upload looks like
        final_type = media_type
        if not final_type and media is not None:
            final_type = media_type_for(media.content_type or "")
        try:
            post = Post(
                owner=user_id,
                caption=caption,
                category=category or "General",
                is_private=bool(is_private),
                allow_comments=True if allow_comments is None else allow_comments,
                text_background_color=color,
                media_type=final_type or "text",
            )
        except SchemaError as e:
            raise ValidationError(_first_error(e))

        if media is not None:
            post.media_url = self.media.accept(media)

        try:
            post_id = self.store.insert("post", post)
        except Exception:
            if post.media_url:
                self.media.remove(post.media_url)
            raise
        logger.info("Post %s created by %s", post_id, user_id)
        return self._present([self._get(post_id)])[0]

    def list(self, user_id: str, page: int = DEFAULT_PAGE, limit: int = DEFAULT_LIMIT) -> dict:
        page = page if page and page > 0 else DEFAULT_PAGE
        limit = limit if limit and limit > 0 else DEFAULT_LIMIT
        query = {"is_private": False}

        docs = self.store.find("post", query, sort=[("created_at", -1)], skip=(page - 1) * limit, limit=limit)
        total = self.store.count("post", query)
        return {
            "posts": self._present(docs),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_posts": total,
        }

    def list_by_user(self, user_id: str, target_user_id: str) -> List[dict]:
        # Private posts are only visible to their owner
        query = {"owner": target_user_id}
        if target_user_id != user_id:
            query["is_private"] = False
        docs = self.store.find("post", query, sort=[("created_at", -1)])
        return self._present(docs)

    def get(self, user_id: str, post_id: str) -> dict:
        # NOTE: no visibility check here; any caller can read a private post by id.
        return self._present([self._get(post_id)])[0]

    def update(self, user_id: str, post_id: str, patch: PostUpdate) -> dict:
        post = self._get(post_id)
        if post["owner"] != user_id:
            raise Forbidden()

        fields = patch.model_dump(exclude_none=True)
        if not fields:
            return self._present([post])[0]
        updated = self.store.update_fields("post", post_id, fields)
        if updated is None:
            raise NotFound("Post not found")
        return self._present([updated])[0]

    def delete(self, user_id: str, post_id: str) -> dict:
        post = self._get(post_id)
        if post["owner"] != user_id:
            raise Forbidden()

        self.store.delete_many("comment", {"post": post_id})
        self.store.delete("post", post_id)
        if post.get("media_url"):
            self.media.remove(post["media_url"])
        logger.info("Post %s deleted by %s", post_id, user_id)
        return {"message": "Post deleted successfully"}

    def toggle_like(self, user_id: str, post_id: str) -> dict:
        updated = self.store.toggle_member("post", post_id, "likes", user_id)
        if updated is None:
            raise NotFound("Post not found")
        return self._present([updated])[0]

    def add_comment(self, user_id: str, post_id: str, text: str) -> dict:
        post = self._get(post_id)
        if not post.get("allow_comments", True):
            raise Forbidden("Comments are disabled for this post")

        comment_id = self.store.insert("comment", Comment(author=user_id, post=post_id, content=text))
        doc = self.store.find_by_id("comment", comment_id)
        users = self.store.resolve_users([user_id], USER_FIELDS)
        return self._comment_view(doc, users)


# Routes

router = APIRouter(prefix="/posts", tags=["posts"])


def get_post_service(request: Request) -> PostService:
    return request.app.state.posts


@router.post("", status_code=201)
def create_post(
    caption: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    is_private: Optional[bool] = Form(None),
    allow_comments: Optional[bool] = Form(None),
    text_background_color: Optional[str] = Form(None),
    media_type: Optional[str] = Form(None),
    media: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    if media is not None and not media.filename:
        media = None
    return posts.create(
        user_id,
        caption,
        category=category,
        is_private=is_private,
        allow_comments=allow_comments,
        text_background_color=text_background_color,
        media_type=media_type,
        media=media,
    )


@router.get("")
def list_posts(
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    user_id: str = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.list(user_id, page, limit)


@router.get("/user/{target_user_id}")
def list_user_posts(
    target_user_id: str,
    user_id: str = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.list_by_user(user_id, target_user_id)


@router.get("/{post_id}")
def get_post(post_id: str, user_id: str = Depends(get_current_user), posts: PostService = Depends(get_post_service)):
    return posts.get(user_id, post_id)


@router.put("/{post_id}")
def update_post(
    post_id: str,
    patch: PostUpdate,
    user_id: str = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.update(user_id, post_id, patch)


@router.delete("/{post_id}")
def delete_post(post_id: str, user_id: str = Depends(get_current_user), posts: PostService = Depends(get_post_service)):
    return posts.delete(user_id, post_id)


@router.post("/{post_id}/like")
def like_post(post_id: str, user_id: str = Depends(get_current_user), posts: PostService = Depends(get_post_service)):
    """Toggle the caller's like on a post."""
    return posts.toggle_like(user_id, post_id)


@router.post("/{post_id}/comments")
def add_comment(
    post_id: str,
    payload: PostCommentCreate,
    user_id: str = Depends(get_current_user),
    posts: PostService = Depends(get_post_service),
):
    return posts.add_comment(user_id, post_id, payload.text)
