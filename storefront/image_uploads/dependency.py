from fastapi import Request
from storefront.image_uploads.services import ImageStore


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store
