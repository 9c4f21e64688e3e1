from fastapi import APIRouter

from playground import state
from playground.models.execution import AdmissionStats, HealthResponse, utc_timestamp

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    redis_status = "disabled"
    if state.redis_client:
        try:
            await state.redis_client.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

    admission: dict[str, AdmissionStats] = {}
    if state.batch_admission:
        admission["batch"] = AdmissionStats(**state.batch_admission.stats())
    if state.interactive_admission:
        admission["interactive"] = AdmissionStats(**state.interactive_admission.stats())

    return HealthResponse(
        status="online",
        mode="native-gcc",
        timestamp=utc_timestamp(),
        redis=redis_status,
        admission=admission,
    )
