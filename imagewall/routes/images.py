"""
Image routes: paginated listing, upload and detail.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, func
from starlette.concurrency import run_in_threadpool
from typing import Optional
import logging
import time

from imagewall.config import AppConfig
from imagewall.database import get_db
from imagewall.dependencies import get_config, get_storage
from imagewall.models import Image
from imagewall.schemas import CommentResponse, ImageDetailResponse, ImageResponse, ImagesPageResponse
from imagewall.services.storage_service import StorageClient, build_cdn_url, build_object_key
from imagewall.utils.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, PageWindow, parse_positive_int

logger = logging.getLogger(__name__)

router = APIRouter()

GALLERY_PAGE = "/images"


def _to_image_response(image: Image, cdn_domain: str) -> ImageResponse:
    return ImageResponse(
        id=image.id,
        title=image.title,
        storage_key=image.storage_key,
        created_at=image.created_at,
        cdn_url=build_cdn_url(cdn_domain, image.storage_key),
    )


@router.get("/images", response_model=ImagesPageResponse)
async def list_images(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_config),
):
    """
    Get one page of images, newest first.

    Args:
        page: 1-based page number (default 1; unparsable values fall back)
        limit: Page size (default 10; unparsable values fall back)

    Returns:
        ImagesPageResponse: Images with CDN URLs and pagination metadata

    Raises:
        HTTPException: 500 if the database query fails
    """
    page_number = parse_positive_int(page, DEFAULT_PAGE)
    page_size = parse_positive_int(limit, DEFAULT_LIMIT)

    try:
        count_result = await db.execute(select(func.count(Image.id)))
        total_items = count_result.scalar() or 0
        window = PageWindow(page=page_number, limit=page_size, total_items=total_items)

        # Pages past the end skip the row query; page and limit may exceed
        # the database integer range
        images = []
        if window.offset < total_items:
            result = await db.execute(
                select(Image)
                .order_by(Image.created_at.desc(), Image.id.desc())
                .offset(window.offset)
                .limit(min(window.limit, total_items))
            )
            images = result.scalars().all()

        logger.info(
            f"Retrieved {len(images)} images "
            f"(page: {window.page}/{window.total_pages}, limit: {window.limit})"
        )

        return ImagesPageResponse(
            images=[_to_image_response(img, config.cdn_domain) for img in images],
            current_page=window.page,
            total_pages=window.total_pages,
            has_previous_page=window.has_previous_page,
            has_next_page=window.has_next_page,
            prev_page=window.prev_page,
            next_page=window.next_page,
            limit=window.limit,
            total_items=total_items,
        )

    except Exception as e:
        logger.error(f"Error fetching images: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": f"Error fetching images: {str(e)}"}
        )


@router.post("/image/post")
async def upload_image(
    request: Request,
    image_file: Optional[UploadFile] = File(None, alias="imageFile"),
    title: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_config),
    storage: StorageClient = Depends(get_storage),
):
    """
    Upload one image to the bucket, then record its metadata.

    The object is written before the row is committed. If the database
    write fails the object stays in the bucket; it is logged here and
    picked up later by the orphan sweep.

    Returns:
        302 redirect to the gallery page, or 201 with the created image
        when the client accepts JSON. Errors are plain text.
    """
    if image_file is None or not image_file.filename:
        return PlainTextResponse(
            "No file uploaded. Please select an image to upload.",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    timestamp_ms = int(time.time() * 1000)
    image_title = title.strip() if title and title.strip() else f"Image-{timestamp_ms}"
    storage_key = build_object_key(
        image_file.filename,
        prefix=config.upload_key_prefix,
        timestamp_ms=timestamp_ms,
    )

    try:
        data = await image_file.read()
        await run_in_threadpool(storage.put_object, storage_key, data, image_file.content_type)
        logger.info(f"Successfully uploaded {storage_key} to bucket {storage.bucket}")
    except Exception as e:
        logger.error(f"Error uploading {storage_key} to storage: {str(e)}", exc_info=True)
        return PlainTextResponse(
            f"Failed to process image upload: {str(e)}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        image = Image(title=image_title, storage_key=storage_key)
        db.add(image)
        await db.commit()
        await db.refresh(image)
        logger.info(f"Saved metadata for {storage_key} (image ID {image.id})")
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Metadata write failed after upload; object {storage_key} is orphaned: {str(e)}",
            exc_info=True
        )
        return PlainTextResponse(
            f"Failed to process image upload: {str(e)}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if "application/json" in request.headers.get("accept", ""):
        created = _to_image_response(image, config.cdn_domain)
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=created.model_dump(mode="json", by_alias=True),
        )

    return RedirectResponse(GALLERY_PAGE, status_code=status.HTTP_302_FOUND)


@router.get("/image/{image_id}", response_model=ImageDetailResponse)
async def get_image_detail(
    image_id: int,
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_config),
):
    """
    Get one image with its comments, newest comment first.

    Raises:
        HTTPException: 404 if the image does not exist, 500 if the query fails
    """
    try:
        result = await db.execute(
            select(Image)
            .options(selectinload(Image.comments))
            .where(Image.id == image_id)
        )
        image = result.scalar_one_or_none()

        if not image:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Image not found."}
            )

        base = _to_image_response(image, config.cdn_domain)
        return ImageDetailResponse(
            **base.model_dump(),
            comments=[
                CommentResponse(
                    id=comment.id,
                    content=comment.content,
                    image_id=comment.image_id,
                    created_at=comment.created_at,
                )
                for comment in image.comments
            ],
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching image detail: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": f"Error fetching image detail: {str(e)}"}
        )
