import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import Studio

logger = logging.getLogger(__name__)


async def get_current_studio(
    x_studio_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Studio:
    """
    Resolve the studio the request acts for.

    Studio staff authenticate upstream; this service only receives the
    studio id in the X-Studio-Id header.
    """
    if not x_studio_id:
        logger.warning("❌ Missing X-Studio-Id header")
        raise HTTPException(status_code=401, detail="Not authenticated")

    studio = db.query(Studio).filter(Studio.id == x_studio_id).first()
    if not studio:
        logger.warning(f"❌ Unknown studio in X-Studio-Id header: {x_studio_id}")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return studio
