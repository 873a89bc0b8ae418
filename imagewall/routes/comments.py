"""
Comment routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, Optional, Tuple
import logging

from imagewall.database import get_db
from imagewall.models import Comment
from imagewall.schemas import CommentConfirmation, CommentCreatedResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def validate_comment_payload(payload: Any) -> Tuple[Optional[int], Optional[str], Dict[str, str]]:
    """
    Check an incoming comment body.

    Returns:
        (image_id, content, errors) where errors maps each failed field
        to a message and is empty when the payload is valid
    """
    errors = {}
    if not isinstance(payload, dict):
        payload = {}

    image_id = None
    raw_image_id = payload.get("imageId")
    if raw_image_id is not None and not isinstance(raw_image_id, bool):
        try:
            image_id = int(str(raw_image_id).strip())
        except ValueError:
            image_id = None
    if image_id is None or image_id < 1:
        image_id = None
        errors["imageId"] = "Invalid or missing imageId in request body."

    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        content = None
        errors["content"] = "Comment content cannot be empty."

    return image_id, content, errors


def _violates_image_reference(error: IntegrityError) -> bool:
    """SQLite and PostgreSQL both name the broken constraint as a foreign key."""
    return "foreign key" in str(error.orig).lower()


@router.post("/comment/post", response_model=CommentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def post_comment(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Attach a comment to an image.

    The parent image is not read first; the foreign key rejects orphans
    and that rejection is reported as 404.

    Raises:
        HTTPException: 400 on invalid input, 404 for an unknown image,
        500 if the insert fails
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    image_id, content, errors = validate_comment_payload(payload)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": " ".join(errors.values()), "fields": errors}
        )

    try:
        comment = Comment(content=content, image_id=image_id)
        db.add(comment)
        await db.commit()
        await db.refresh(comment)
        logger.info(f"Added comment {comment.id} to image {image_id}")
    except IntegrityError as e:
        await db.rollback()
        if not _violates_image_reference(e):
            logger.error(f"Error adding comment: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"error": f"Failed to add comment: {str(e)}"}
            )
        logger.warning(f"Rejected comment for unknown image {image_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Image not found."}
        )
    except Exception as e:
        await db.rollback()
        logger.error(f"Error adding comment: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": f"Failed to add comment: {str(e)}"}
        )

    return CommentCreatedResponse(
        message="Comment posted successfully!",
        comment=CommentConfirmation(id=comment.id, image_id=image_id, content=content),
    )
