"""
System configuration API routes.

Exposes the effective timesheet configuration and lets admins override
single values.
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth.dependencies import get_current_user, get_current_admin_user
from ...configuration import SystemConfiguration, UnknownConfigurationError, get_configuration
from ...database.connection import get_db
from ...database.models import User
from ...errors import ValidationFailed
from ...schemas.configuration import ConfigurationUpdateRequest, ConfigurationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/config", tags=["Configuration"])


# PUBLIC_INTERFACE
@router.get("/timesheet", response_model=ConfigurationResponse,
            summary="Get timesheet configuration",
            description="Get the effective timesheet rules: long running limit, active entry limit and rounding.")
async def get_timesheet_configuration(
    current_user: User = Depends(get_current_user),
    configuration: SystemConfiguration = Depends(get_configuration)
):
    """Get the effective timesheet configuration."""
    return ConfigurationResponse(configuration=configuration.all())


# PUBLIC_INTERFACE
@router.patch("", response_model=ConfigurationResponse,
              summary="Update configuration",
              description="Override a single configuration value. Requires admin role.")
async def update_configuration(
    request: ConfigurationUpdateRequest,
    current_user: User = Depends(get_current_admin_user),
    configuration: SystemConfiguration = Depends(get_configuration),
    db: Session = Depends(get_db)
):
    """
    Store a configuration override.

    Raises:
        ValidationFailed: If the name is unknown or the value has the wrong type
    """
    try:
        configuration.set(request.name, request.value)
    except UnknownConfigurationError:
        raise ValidationFailed({"name": ["This value is not valid."]})
    except ValueError:
        raise ValidationFailed({"value": ["This value is not valid."]})

    db.commit()
    logger.info(f"Configuration '{request.name}' set to '{request.value}' by user {current_user.id}")
    return ConfigurationResponse(configuration=configuration.all())
