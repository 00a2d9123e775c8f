# muninn/app_attributes.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from .repos import Attribute, AttributeNotFoundError
from .resources import Resources, get_path_user, get_resources

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/attribute", tags=["attributes"])


class AttributeRequest(BaseModel):
    attribute: str = Field(..., min_length=1)
    value: str


@router.post("/{username}", response_model=Attribute)
def save_attribute(
    payload: AttributeRequest,
    username: str = Depends(get_path_user),
    resources: Resources = Depends(get_resources),
):
    return resources.user_attributes_repo.save_attribute(
        username, payload.attribute, payload.value
    )


@router.get("/{username}/{attribute}", response_model=Attribute)
def get_attribute(
    attribute: str,
    username: str = Depends(get_path_user),
    resources: Resources = Depends(get_resources),
):
    try:
        return resources.user_attributes_repo.get_attribute(username, attribute)
    except AttributeNotFoundError:
        logger.info("Attribute %s not set for %s", attribute, username)
        raise HTTPException(status_code=404, detail="Attribute not found")
