# app/core/dependencies.py
"""Database session dependencies shared by the routers."""

from typing import Annotated
from fastapi import Depends
from sqlalchemy.orm import Session
from app.core.database import get_db, get_ds_db

# Config database: saved table configurations and request logs
SessionDep = Annotated[Session, Depends(get_db)]

# Data source database: the objects the configured queries run against
DSSessionDep = Annotated[Session, Depends(get_ds_db)]
