"""FastAPI REST endpoints for the gang workflow engine."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..core.engine import GangEngine
from ..core.exceptions import WorkflowEngineError, create_error_response
from ..core.logging import get_logger
from ..core.middleware import status_code_for_error
from ..models.core import EventType

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["gangs"])

EngineBuilder = Callable[[Dict[str, Any]], GangEngine]


class GangCatalog:
    """In-memory catalog of registered gangs, keyed by workflow name."""

    def __init__(self, engine_builder: Optional[EngineBuilder] = None):
        self.engine_builder: EngineBuilder = engine_builder or (lambda config: GangEngine(config))
        self._gangs: Dict[str, GangEngine] = {}

    async def register(self, config: Dict[str, Any]) -> GangEngine:
        """Validate and load a gang, replacing any gang of the same name."""
        engine = self.engine_builder(config)
        await engine.load()
        if engine.workflow_name in self._gangs:
            logger.info(f"Replacing gang '{engine.workflow_name}'")
        self._gangs[engine.workflow_name] = engine
        return engine

    def get(self, name: str) -> Optional[GangEngine]:
        return self._gangs.get(name)

    def remove(self, name: str) -> bool:
        return self._gangs.pop(name, None) is not None

    def names(self) -> List[str]:
        return list(self._gangs)


# Global instance (initialized in main.py)
_catalog: Optional[GangCatalog] = None


def init_dependencies(catalog: GangCatalog):
    """Initialize the global dependencies."""
    global _catalog
    _catalog = catalog


def get_catalog() -> GangCatalog:
    """Dependency to get the gang catalog."""
    if _catalog is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Gang catalog not initialized"
        )
    return _catalog


# Request/Response models
class GangSummary(BaseModel):
    """Summary of a registered gang."""
    name: str = Field(..., description="Workflow name")
    entry: Optional[str] = Field(None, description="Entry node")
    members: List[str] = Field(default_factory=list, description="Member names")
    squads: List[str] = Field(default_factory=list, description="Squad names")
    tests: int = Field(0, description="Number of declared tests")


class RunGangRequest(BaseModel):
    """Request model for running a gang."""
    input: str = Field(..., description="Workflow input text")
    run_id: str = Field("single", description="Run identifier")


class HarnessResponse(BaseModel):
    """Response model for a test-harness run."""
    workflow: str
    total: int
    passed: int
    results: List[Dict[str, Any]]


def _summary(engine: GangEngine) -> GangSummary:
    config = engine.config
    return GangSummary(
        name=engine.workflow_name,
        entry=config.workflow.entry,
        members=[m.name for m in config.members],
        squads=[s.name for s in config.squads],
        tests=len(config.tests),
    )


def _require_gang(catalog: GangCatalog, name: str) -> GangEngine:
    engine = catalog.get(name)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "GangNotFound",
                "message": f"Gang '{name}' not found",
                "details": {"name": name}
            }
        )
    return engine


def _engine_error(e: WorkflowEngineError, action: str) -> HTTPException:
    logger.warning(f"Workflow engine error during {action}: {str(e)}")
    return HTTPException(status_code=status_code_for_error(e), detail=create_error_response(e))


@router.post(
    "/gangs",
    response_model=GangSummary,
    status_code=status.HTTP_201_CREATED,
    summary="Register a gang",
    description="Validate a gang configuration and make it available for runs"
)
async def register_gang(
    config: Dict[str, Any] = Body(..., description="Gang configuration"),
    catalog: GangCatalog = Depends(get_catalog)
) -> GangSummary:
    try:
        engine = await catalog.register(config)
    except WorkflowEngineError as e:
        raise _engine_error(e, "gang registration")
    logger.info(f"Registered gang '{engine.workflow_name}'")
    return _summary(engine)


@router.get("/gangs", response_model=List[GangSummary], summary="List registered gangs")
async def list_gangs(catalog: GangCatalog = Depends(get_catalog)) -> List[GangSummary]:
    return [_summary(catalog.get(name)) for name in catalog.names()]


@router.get("/gangs/{name}", response_model=GangSummary, summary="Get a registered gang")
async def get_gang(name: str, catalog: GangCatalog = Depends(get_catalog)) -> GangSummary:
    return _summary(_require_gang(catalog, name))


@router.delete("/gangs/{name}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a registered gang")
async def delete_gang(name: str, catalog: GangCatalog = Depends(get_catalog)):
    _require_gang(catalog, name)
    catalog.remove(name)


@router.post(
    "/gangs/{name}/runs",
    summary="Run a gang",
    description="Execute the gang's workflow graph on the given input and return the run record"
)
async def run_gang(
    name: str,
    request: RunGangRequest,
    catalog: GangCatalog = Depends(get_catalog)
) -> Dict[str, Any]:
    """
    Run a registered gang.

    Raises:
        HTTPException: 404 for an unknown gang, otherwise the status mapped from the engine error
    """
    engine = _require_gang(catalog, name)
    try:
        record = await engine.run_graph(request.input, request.run_id)
    except WorkflowEngineError as e:
        raise _engine_error(e, "gang run")
    return record.model_dump(mode="json", by_alias=True)


@router.post(
    "/gangs/{name}/tests",
    response_model=HarnessResponse,
    summary="Run a gang's tests",
    description="Run every declared test, evaluate assertions and write the test reports"
)
async def run_gang_tests(name: str, catalog: GangCatalog = Depends(get_catalog)) -> HarnessResponse:
    engine = _require_gang(catalog, name)
    try:
        results = await engine.run_tests()
    except WorkflowEngineError as e:
        raise _engine_error(e, "gang tests")
    return HarnessResponse(
        workflow=engine.workflow_name,
        total=len(results),
        passed=sum(1 for r in results if r.passed),
        results=[
            {**r.model_dump(mode="json", by_alias=True), "passed": r.passed}
            for r in results
        ],
    )


@router.get("/gangs/{name}/events", summary="List observability events recorded for a gang")
async def list_gang_events(
    name: str,
    event_type: Optional[EventType] = None,
    catalog: GangCatalog = Depends(get_catalog)
) -> Dict[str, Any]:
    engine = _require_gang(catalog, name)
    observer = engine.observer
    events = observer.events_of(event_type) if event_type else observer.events
    return {
        "workflow": engine.workflow_name,
        "enabled": observer.enabled,
        "events": [e.model_dump(mode="json") for e in events],
        "retrieved_at": datetime.utcnow().isoformat(),
    }
