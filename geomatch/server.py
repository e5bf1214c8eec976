"""
FastAPI server for the geomatch discovery service.

Exposes:
  - GET /health - Health check
  - GET /users/search/{user_id} - Filtered, geo-radius candidate discovery
  - Profile, connection request, skip, chat and subscription routes
  - GET /docs - Interactive API documentation (Swagger UI)
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Any, List, Optional, Annotated, Union
import time

# Import configuration (loads .env automatically)
from geomatch.config import config, validate_config

# Import logging setup
from geomatch.utils.logging_config import logger, setup_logging

from geomatch.graphs.discovery import DiscoveryService
from geomatch.tools import social_tools
from geomatch.tools.firestore_tools import close_db, create_firestore_stores
from geomatch.tools.stores import Stores
from geomatch.utils.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)

# Setup logging
setup_logging(debug=config.DEBUG)

# ============================================================
# VALIDATE CONFIGURATION AT STARTUP
# ============================================================
try:
    config_status = validate_config()
    logger.info("Configuration validated successfully")
    for key, value in config_status.items():
        logger.info(f"  {key}: {value}")
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    exit(1)

# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="geomatch",
    description="Location-aware discovery, connections and chat persistence",
    version="1.0.0",
)

origins = [
    "http://localhost:5173",  # Vite dev
    "http://localhost:3000",  # React/Next dev
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# DEPENDENCIES
# ============================================================
def get_stores(request: Request) -> Stores:
    """Stores opened at startup and shared by every request."""
    return request.app.state.stores


def get_discovery_service(request: Request) -> DiscoveryService:
    return request.app.state.discovery


def verify_token(
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Require the shared bearer token when API_TOKEN is configured."""
    if config.API_TOKEN:
        expected = f"Bearer {config.API_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )


StoresDep = Annotated[Stores, Depends(get_stores)]
DiscoveryDep = Annotated[DiscoveryService, Depends(get_discovery_service)]


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================
class SignupRequest(BaseModel):
    """
    Request body for /users/signup.

    Fields are optional here so missing ones produce the service's own
    "<Field> is required" message instead of a schema error.
    """
    name: Optional[str] = None
    contact: Optional[str] = None
    gender: Optional[str] = None
    bio: Optional[str] = None
    dob: Optional[str] = None
    interests: Optional[Union[str, List[str]]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    education: Optional[str] = None


class EditUserRequest(BaseModel):
    name: Optional[str] = None
    dob: Optional[str] = None
    bio: Optional[str] = None
    contact: Optional[str] = None
    gender: Optional[str] = None
    education: Optional[str] = None
    interests: Optional[Union[str, List[str]]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ConnectionRequestBody(BaseModel):
    """Ordered pair: sender_id sent (or is removing) a request to receiver_id."""
    sender_id: str
    receiver_id: str


class SkipRequest(BaseModel):
    user_id: str
    skipped_user_id: str


class MessageRequest(BaseModel):
    app_id: str
    from_user: str
    to_user: str
    message: str


class SubscriptionRequest(BaseModel):
    user_id: str
    days: int = 30
    reason: str


class ApiResponse(BaseModel):
    """
    Response body for every non-system route.

    Attributes:
        success (bool): Whether the operation succeeded
        data (Any): Operation output
        error (Optional[str]): Error message if something went wrong
    """
    success: bool
    data: Any = None
    error: Optional[str] = None


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """
    Middleware to track request processing time.

    Adds X-Process-Time header to all responses showing how long request took.
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# SYSTEM ROUTES
# ============================================================
@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict: {"status": "healthy"}
    """
    return {"status": "healthy"}


@app.get("/", tags=["System"])
async def root() -> Dict[str, str]:
    """Information about the API and where its documentation lives."""
    return {
        "service": "geomatch",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# ============================================================
# DISCOVERY
# ============================================================
@app.get(
    "/users/search/{user_id}",
    response_model=ApiResponse,
    tags=["Discovery"],
    dependencies=[Depends(verify_token)],
)
def search_users(
    user_id: str,
    discovery: DiscoveryDep,
    gender: Optional[str] = None,
    age_range: Optional[str] = Query(None, alias="ageRange"),
    interests: Optional[str] = None,
    latitude: Optional[str] = None,
    longitude: Optional[str] = None,
    radius_range: Optional[str] = Query(None, alias="radiusRange"),
    radius: Optional[str] = None,
) -> ApiResponse:
    """
    Discover candidates for a user.

    Multi-valued filters are comma-separated (gender=male,female); ranges
    are dash-joined (ageRange=18-25, radiusRange=0-100 in km).
    """
    filters = {
        "gender": gender,
        "ageRange": age_range,
        "interests": interests,
        "latitude": latitude,
        "longitude": longitude,
        "radiusRange": radius_range,
        "radius": radius,
    }
    logger.info(f"Discovery request for user: {user_id}")
    logger.debug("Filters: %s", {k: v for k, v in filters.items() if v is not None})
    return ApiResponse(success=True, data=discovery.discover(user_id, filters))


@app.get(
    "/users/searchByLocation/{user_id}",
    response_model=ApiResponse,
    tags=["Discovery"],
    dependencies=[Depends(verify_token)],
)
def search_by_location(
    user_id: str,
    discovery: DiscoveryDep,
    latitude: Optional[str] = None,
    longitude: Optional[str] = None,
    radius: Optional[str] = None,
) -> ApiResponse:
    """Radius-only discovery; falls back to the user's stored location."""
    filters = {"latitude": latitude, "longitude": longitude, "radius": radius}
    return ApiResponse(success=True, data=discovery.discover(user_id, filters))


# ============================================================
# USERS
# ============================================================
@app.post(
    "/users/signup",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def signup(body: SignupRequest, stores: StoresDep) -> ApiResponse:
    user = social_tools.signup(stores, body.model_dump())
    return ApiResponse(success=True, data=user)


@app.get(
    "/users/id/{user_id}",
    response_model=ApiResponse,
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def get_user(user_id: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(success=True, data=social_tools.get_user(stores, user_id))


@app.get(
    "/users/exists/{contact}",
    response_model=ApiResponse,
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def user_exists(contact: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(
        success=True, data=social_tools.find_user_by_contact(stores, contact)
    )


@app.put(
    "/users/editUser/{user_id}",
    response_model=ApiResponse,
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def edit_user(user_id: str, body: EditUserRequest, stores: StoresDep) -> ApiResponse:
    user = social_tools.edit_user(stores, user_id, body.model_dump(exclude_none=True))
    return ApiResponse(success=True, data=user)


@app.delete(
    "/users/{user_id}",
    response_model=ApiResponse,
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def deactivate_user(user_id: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(
        success=True, data=social_tools.deactivate_user(stores, user_id)
    )


# ============================================================
# CONNECTIONS AND SKIPS
# ============================================================
@app.post(
    "/requests/send",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def send_request(body: ConnectionRequestBody, stores: StoresDep) -> ApiResponse:
    request = social_tools.send_request(stores, body.sender_id, body.receiver_id)
    return ApiResponse(success=True, data=request)


@app.post(
    "/requests/accept",
    response_model=ApiResponse,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def accept_request(body: ConnectionRequestBody, stores: StoresDep) -> ApiResponse:
    request = social_tools.accept_request(stores, body.sender_id, body.receiver_id)
    return ApiResponse(success=True, data=request)


@app.post(
    "/requests/reject",
    response_model=ApiResponse,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def reject_request(body: ConnectionRequestBody, stores: StoresDep) -> ApiResponse:
    request = social_tools.reject_request(stores, body.sender_id, body.receiver_id)
    return ApiResponse(success=True, data=request)


@app.post(
    "/requests/remove",
    response_model=ApiResponse,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def remove_connection(body: ConnectionRequestBody, stores: StoresDep) -> ApiResponse:
    request = social_tools.remove_connection(
        stores, body.sender_id, body.receiver_id
    )
    return ApiResponse(success=True, data=request)


@app.get(
    "/requests/incoming/{user_id}",
    response_model=ApiResponse,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def incoming_requests(user_id: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(
        success=True, data=social_tools.list_incoming_requests(stores, user_id)
    )


@app.get(
    "/friends/{user_id}",
    response_model=ApiResponse,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def friends(user_id: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(success=True, data=social_tools.list_friends(stores, user_id))


@app.post(
    "/skips",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Connections"],
    dependencies=[Depends(verify_token)],
)
def skip_user(body: SkipRequest, stores: StoresDep) -> ApiResponse:
    skip = social_tools.skip_user(stores, body.user_id, body.skipped_user_id)
    return ApiResponse(success=True, data=skip)


# ============================================================
# CHAT AND SUBSCRIPTIONS
# ============================================================
@app.post(
    "/messages",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Chat"],
    dependencies=[Depends(verify_token)],
)
def send_message(body: MessageRequest, stores: StoresDep) -> ApiResponse:
    message = social_tools.send_message(
        stores, body.app_id, body.from_user, body.to_user, body.message
    )
    return ApiResponse(success=True, data=message)


@app.get(
    "/get-messages",
    response_model=ApiResponse,
    tags=["Chat"],
    dependencies=[Depends(verify_token)],
)
def get_messages(app_id: str, user1: str, user2: str, stores: StoresDep) -> ApiResponse:
    return ApiResponse(
        success=True, data=social_tools.get_messages(stores, app_id, user1, user2)
    )


@app.post(
    "/subscriptions",
    response_model=ApiResponse,
    tags=["Subscriptions"],
    dependencies=[Depends(verify_token)],
)
def subscribe(body: SubscriptionRequest, stores: StoresDep) -> ApiResponse:
    user = social_tools.subscribe(stores, body.user_id, body.days, body.reason)
    return ApiResponse(success=True, data=user)


# ============================================================
# ERROR HANDLERS
# ============================================================
def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "status_code": status_code,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions with consistent error response format.
    """
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.warning(f"Invalid input on {request.url.path}: {exc}")
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error_response(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    """
    Store failures abort the request; the client decides whether to retry.
    """
    logger.error(f"Store unavailable on {request.url.path}: {exc}")
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable"
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions.

    Never returns the exception message to the client; use logging instead.
    """
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.exception("Full traceback:")
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


# ============================================================
# STARTUP EVENTS
# ============================================================
@app.on_event("startup")
async def startup_event():
    """
    Open the Firestore client once and wire the stores and services to it.
    """
    logger.info("=" * 60)
    logger.info("geomatch service starting up")
    logger.info("=" * 60)

    stores = create_firestore_stores()
    app.state.stores = stores
    app.state.discovery = DiscoveryService(stores)

    logger.info(f"Firebase Project: {config.FIREBASE_PROJECT_ID}")
    logger.info(f"Debug Mode: {config.DEBUG}")
    logger.info(f"Max Candidates: {config.MAX_CANDIDATES}")
    logger.info(
        f"Default radius band: {config.DEFAULT_MIN_RADIUS_KM}-{config.DEFAULT_MAX_RADIUS_KM} km"
    )
    logger.info("Service ready to handle requests")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Close the Firestore client.
    """
    close_db()
    logger.info("geomatch service shutting down")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    """
    Run with: python -m uvicorn geomatch.server:app --reload
    """
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
