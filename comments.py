import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from auth import get_current_user
from database import DocumentStore, serialize
from errors import Forbidden, NotFound
from schemas import Comment, CommentContent, CommentCreate

logger = logging.getLogger(__name__)

AUTHOR_FIELDS = ("name", "email", "profile_picture")


class CommentService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _get(self, comment_id: str) -> dict:
        comment = self.store.find_by_id("comment", comment_id)
        if not comment:
            raise NotFound("Comment not found")
        return comment

    def _get_owned(self, user_id: str, comment_id: str) -> dict:
        comment = self._get(comment_id)
        if comment["author"] != user_id:
            raise Forbidden()
        return comment

    def create(self, user_id: str, post_id: str, content: str) -> dict:
        if not self.store.find_by_id("post", post_id):
            raise NotFound("Post not found")
        comment_id = self.store.insert("comment", Comment(author=user_id, post=post_id, content=content))
        return serialize(self._get(comment_id))

    def list_for_post(self, post_id: str) -> List[dict]:
        docs = self.store.find("comment", {"post": post_id}, sort=[("created_at", -1)])
        users = self.store.resolve_users([d["author"] for d in docs], AUTHOR_FIELDS)
        out = []
        for d in docs:
            item = serialize(d)
            item["author"] = users[d["author"]]
            item["replies"] = [serialize(r) for r in self.store.resolve("comment", d.get("replies", []))]
            out.append(item)
        return out

    def update(self, user_id: str, comment_id: str, content: str) -> dict:
        self._get_owned(user_id, comment_id)
        updated = self.store.update_fields("comment", comment_id, {"content": content})
        if updated is None:
            raise NotFound("Comment not found")
        return serialize(updated)

    def delete(self, user_id: str, comment_id: str) -> dict:
        comment = self._get_owned(user_id, comment_id)

        # Replies go with their parent, all the way down
        doomed = [comment_id]
        pending = list(comment.get("replies", []))
        while pending:
            doomed.extend(pending)
            pending = [r for d in self.store.resolve("comment", pending) for r in d.get("replies", [])]
        self.store.delete_ids("comment", doomed)

        # Unlink it from whichever comment it was a reply to
        for parent in self.store.find("comment", {"post": comment["post"]}):
            if comment_id in parent.get("replies", []):
                self.store.modify(
                    "comment",
                    str(parent["_id"]),
                    lambda doc: {"replies": [r for r in doc.get("replies", []) if r != comment_id]},
                )
        return {"message": "Comment deleted"}

    def toggle_like(self, user_id: str, comment_id: str) -> dict:
        updated = self.store.toggle_member("comment", comment_id, "likes", user_id)
        if updated is None:
            raise NotFound("Comment not found")
        return serialize(updated)

    def reply(self, user_id: str, parent_id: str, content: str) -> dict:
        parent = self._get(parent_id)
        reply_id = self.store.insert("comment", Comment(author=user_id, post=parent["post"], content=content))

        linked = self.store.modify("comment", parent_id, lambda doc: {"replies": doc.get("replies", []) + [reply_id]})
        if linked is None:
            # parent vanished between the read and the link
            self.store.delete("comment", reply_id)
            raise NotFound("Comment not found")
        return serialize(self._get(reply_id))


# Routes

router = APIRouter(prefix="/comments", tags=["comments"])


def get_comment_service(request: Request) -> CommentService:
    return request.app.state.comments


@router.post("", status_code=201)
def create_comment(
    payload: CommentCreate,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.create(user_id, payload.post_id, payload.content)


@router.get("/post/{post_id}")
def list_comments(
    post_id: str,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.list_for_post(post_id)


@router.put("/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentContent,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.update(user_id, comment_id, payload.content)


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: str,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.delete(user_id, comment_id)


@router.post("/{comment_id}/like")
def like_comment(
    comment_id: str,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.toggle_like(user_id, comment_id)


@router.post("/{comment_id}/reply", status_code=201)
def reply_to_comment(
    comment_id: str,
    payload: CommentContent,
    user_id: str = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.reply(user_id, comment_id, payload.content)
