from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from schoolfee.application.services.health_service import get_health_status
from schoolfee.infrastructure.cache.redis_client import get_redis_client
from schoolfee.infrastructure.db.session import get_db

router = APIRouter(tags=["health"])


@router.get("/ping", summary="Service health", description="Report database and Redis connectivity.")
def ping(db: Session = Depends(get_db)):
    return get_health_status(db=db, redis_client=get_redis_client())
