"""
Static HTML shells for the browser UI.
The pages fetch their data from the JSON API.
"""
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

PAGES_DIR = Path(__file__).resolve().parent.parent / "pages"

router = APIRouter()


def _page(name: str) -> FileResponse:
    return FileResponse(PAGES_DIR / name, media_type="text/html")


@router.get("/", include_in_schema=False)
async def main_page():
    return _page("main.html")


@router.get("/images", include_in_schema=False)
async def images_page():
    return _page("images.html")


@router.get("/image/upload", include_in_schema=False)
async def upload_page():
    return _page("image-form.html")


@router.get("/image/{image_id}", include_in_schema=False)
async def image_detail_page(image_id: int):
    return _page("image-detail.html")
