"""Listing engine: aggregation, catalog, workflow steps, removal and screens."""

from listingsync.engine.aggregator import (
    ListingPerformance,
    ListingRow,
    aggregate,
    annotate,
    performance,
)
from listingsync.engine.catalog import CatalogSnapshot, ListingCatalog
from listingsync.engine.removal import RemovalOutcome, RemovalRouter
from listingsync.engine.scope import ScreenScope
from listingsync.engine.screens import ListingsScreen, Notice, NoticeLevel, WorkflowScreen
from listingsync.engine.session import EngineSession, open_session
from listingsync.engine.workflow import (
    BasicInfo,
    BasicInfoController,
    CoordinatesController,
    FeaturesController,
    ImageAsset,
    ImagesController,
    MediaUploader,
    PublishController,
    PublishOutcome,
    StepController,
    StepOutcome,
)

__all__ = [
    "aggregate",
    "annotate",
    "performance",
    "ListingRow",
    "ListingPerformance",
    "CatalogSnapshot",
    "ListingCatalog",
    "RemovalOutcome",
    "RemovalRouter",
    "ScreenScope",
    "ListingsScreen",
    "WorkflowScreen",
    "Notice",
    "NoticeLevel",
    "EngineSession",
    "open_session",
    "StepController",
    "StepOutcome",
    "BasicInfo",
    "BasicInfoController",
    "ImageAsset",
    "ImagesController",
    "CoordinatesController",
    "FeaturesController",
    "MediaUploader",
    "PublishController",
    "PublishOutcome",
]
