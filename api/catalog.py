"""Field and step type catalog."""

from __future__ import annotations

from fastapi import APIRouter

from services.catalog import catalog

router = APIRouter()


@router.get("/")
def get_catalog():
    return catalog()
