# backoffice/api/deps/gateway.py - Per-request gateway dependency
from fastapi import Depends
from sqlalchemy.orm import Session

from backoffice.core.db import get_db
from backoffice.gateways.sql import SqlGateway


def get_gateway(db: Session = Depends(get_db)) -> SqlGateway:
    """SqlGateway bound to the request's database session"""
    return SqlGateway(db)
