from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional, Union
import logging
import uvicorn

from . import __version__, schemas
from .config import EngineConfig
from .database import SqlSnapshotRepository
from .service import RecommendationService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_service(request: Request) -> RecommendationService:
    return request.app.state.service


def create_app(service: Optional[RecommendationService] = None) -> FastAPI:
    """Build the API around a single RecommendationService instance."""
    if service is None:
        service = RecommendationService(
            config=EngineConfig.from_env(),
            repository=SqlSnapshotRepository(),
        )

    app = FastAPI(
        title="Short Video Recommendation API",
        description="Behavior-driven, diversified ranking for short video feeds",
        version=__version__,
    )
    app.state.service = service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        """Restore the last saved snapshot, if any."""
        logger.info("Starting up the recommendation service...")
        service.load()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Saving recommendation state before shutdown...")
        service.save()

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint to check if the API is running."""
        return {
            "message": "Welcome to the Short Video Recommendation API",
            "status": "running",
            "endpoints": [
                {"path": "/docs", "description": "API documentation"},
                {"path": "/users/{user_id}/recommendations", "description": "Get personalized video feed"},
                {"path": "/behaviors", "description": "Record a user behavior"},
            ],
        }

    @app.get("/health", response_model=schemas.HealthCheck, tags=["Root"])
    async def health(service: RecommendationService = Depends(get_service)):
        stats = service.stats()
        return {
            "status": "ok",
            "version": __version__,
            "catalog_size": stats["catalog_size"],
            "users": stats["users"],
        }

    # =============================
    # Ingest / exclusions
    # =============================

    @app.post("/behaviors", response_model=schemas.StatusResponse, tags=["Behaviors"])
    def record_behavior(
        behavior: schemas.BehaviorCreate,
        service: RecommendationService = Depends(get_service),
    ):
        ok = service.record_behavior(
            behavior.user_id,
            behavior.video_id,
            behavior.action,
            behavior.watch_time_seconds,
            behavior.metadata,
        )
        if not ok:
            raise HTTPException(status_code=400, detail="Behavior could not be recorded")
        return {"status": "success"}

    @app.post("/users/{user_id}/not-interested", response_model=schemas.StatusResponse, tags=["Behaviors"])
    def mark_not_interested(
        user_id: str,
        body: schemas.ExclusionRequest,
        service: RecommendationService = Depends(get_service),
    ):
        service.mark_not_interested(user_id, body.video_id)
        return {"status": "success"}

    @app.post("/users/{user_id}/viewed", response_model=schemas.StatusResponse, tags=["Behaviors"])
    def mark_viewed(
        user_id: str,
        body: schemas.ExclusionRequest,
        service: RecommendationService = Depends(get_service),
    ):
        service.mark_viewed(user_id, body.video_id)
        return {"status": "success"}

    # =============================
    # Recommendations
    # =============================

    @app.get(
        "/users/{user_id}/recommendations",
        response_model=schemas.RecommendationResponse,
        tags=["Recommendations"],
    )
    def get_recommendations(
        user_id: str,
        count: int = Query(10, ge=1, le=100, description="Number of items to return"),
        exclude: List[str] = Query([], description="Item ids to leave out of this response"),
        service: RecommendationService = Depends(get_service),
    ):
        """
        Get personalized video recommendations for a user.

        - **count**: Number of items (max 100)
        - **exclude**: Item ids to skip, on top of viewed and blacklisted items
        """
        items = service.get_recommendations(user_id, count, exclude)
        return {"status": "success", "user_id": user_id, "items": items}

    @app.post(
        "/users/{user_id}/recommendations/refresh",
        response_model=schemas.RecommendationResponse,
        tags=["Recommendations"],
    )
    def refresh_recommendations(
        user_id: str,
        count: int = Query(10, ge=1, le=100),
        service: RecommendationService = Depends(get_service),
    ):
        items = service.refresh_recommendations(user_id, count)
        return {"status": "success", "user_id": user_id, "items": items}

    @app.get("/users/{user_id}/preferences", response_model=schemas.UserPreference, tags=["Recommendations"])
    def get_preferences(user_id: str, service: RecommendationService = Depends(get_service)):
        preference = service.get_user_preference_stats(user_id)
        if preference is None:
            raise HTTPException(status_code=404, detail="No preference data for user")
        return preference

    # =============================
    # Catalog
    # =============================

    @app.post("/videos", response_model=schemas.PublishResponse, tags=["Catalog"])
    def publish(
        content: Union[schemas.ContentItem, schemas.PublishRequest],
        service: RecommendationService = Depends(get_service),
    ):
        return {"status": "success", "item_id": service.publish(content)}

    @app.get("/videos", response_model=List[schemas.ContentItem], tags=["Catalog"])
    def list_videos(service: RecommendationService = Depends(get_service)):
        return service.get_all_videos()

    @app.get("/videos/{item_id}", response_model=schemas.ContentItem, tags=["Catalog"])
    def get_video(item_id: str, service: RecommendationService = Depends(get_service)):
        item = service.get_video(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Video not found")
        return item

    @app.patch("/videos/{item_id}", response_model=schemas.StatusResponse, tags=["Catalog"])
    def update_video(
        item_id: str,
        fields: schemas.ContentUpdate,
        service: RecommendationService = Depends(get_service),
    ):
        if not service.update(item_id, fields):
            raise HTTPException(status_code=404, detail="Video not found")
        return {"status": "success"}

    @app.delete("/videos/{item_id}", response_model=schemas.StatusResponse, tags=["Catalog"])
    def delete_video(item_id: str, service: RecommendationService = Depends(get_service)):
        if not service.delete(item_id):
            raise HTTPException(status_code=404, detail="Video not found")
        return {"status": "success"}

    @app.get("/creators/{creator_id}/videos", response_model=List[schemas.ContentItem], tags=["Catalog"])
    def creator_videos(creator_id: str, service: RecommendationService = Depends(get_service)):
        return service.get_user_videos(creator_id)

    # =============================
    # Admin
    # =============================

    @app.post("/admin/prune", response_model=schemas.PruneResponse, tags=["Admin"])
    def prune(
        request: schemas.PruneRequest,
        service: RecommendationService = Depends(get_service),
    ):
        events_removed, items_removed = service.prune(
            request.event_max_age_days,
            request.catalog_max_age_days,
        )
        return {"status": "success", "events_removed": events_removed, "items_removed": items_removed}

    @app.post("/admin/snapshot", response_model=schemas.StatusResponse, tags=["Admin"])
    def save_snapshot(service: RecommendationService = Depends(get_service)):
        if not service.save():
            raise HTTPException(status_code=500, detail="Snapshot could not be saved")
        return {"status": "success", "message": "Snapshot saved"}


app = create_app()

if __name__ == "__main__":
    uvicorn.run("recommender.main:app", host="0.0.0.0", port=8000, reload=True)
