"""
Request dependencies: settings, the pool and the services built on it.

Tests replace any of these through `app.dependency_overrides`.
"""

from __future__ import annotations

from fastapi import Depends, Request
from psycopg_pool import ConnectionPool

from inspection_api.config import Settings
from inspection_api.errors import StoreError
from inspection_api.quiz import SubmissionLedger, TrainingLinkService
from inspection_api.repositories import CatalogRepository, ImageRepository, ReportRepository


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pool(request: Request) -> ConnectionPool:
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        raise StoreError("DB_UNAVAILABLE")
    return pool


def get_report_repository(
    request: Request,
    pool: ConnectionPool = Depends(get_pool),
    settings: Settings = Depends(get_app_settings),
) -> ReportRepository:
    return ReportRepository(pool, settings, atomic_upsert=request.app.state.atomic_upsert)


def get_catalog_repository(
    pool: ConnectionPool = Depends(get_pool),
    settings: Settings = Depends(get_app_settings),
) -> CatalogRepository:
    return CatalogRepository(pool, settings)


def get_image_repository(pool: ConnectionPool = Depends(get_pool)) -> ImageRepository:
    return ImageRepository(pool)


def get_ledger(
    pool: ConnectionPool = Depends(get_pool),
    reports: ReportRepository = Depends(get_report_repository),
    settings: Settings = Depends(get_app_settings),
) -> SubmissionLedger:
    return SubmissionLedger(pool, reports=reports, settings=settings)


def get_link_service(
    pool: ConnectionPool = Depends(get_pool),
    reports: ReportRepository = Depends(get_report_repository),
    settings: Settings = Depends(get_app_settings),
) -> TrainingLinkService:
    return TrainingLinkService(pool, reports=reports, settings=settings)


__all__ = [
    "get_app_settings",
    "get_catalog_repository",
    "get_image_repository",
    "get_ledger",
    "get_link_service",
    "get_pool",
    "get_report_repository",
]
