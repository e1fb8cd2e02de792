"""
FastAPI server for the live auction.

Exposes the AuctionService over HTTP: participants register, flag ready and
bid; the admin configures the pool and drives the auction. State flows back
as complete snapshots, either by long-polling GET /auction/snapshot or over
the /auction/ws WebSocket.

The caller's identity is taken from the X-User-Id header as given.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from .. import config
from ..export import team_summary
from .api_schemas import (
    AddUserRequest,
    AuctionConfigResponse,
    BidRequest,
    BidResponse,
    CommandResponse,
    CustomLogoRequest,
    InitializeRequest,
    PlayerIn,
    ProfilePictureRequest,
    QueueRequest,
    RegisterUserRequest,
    RequeueRequest,
    SetPlayersRequest,
    SnapshotResponse,
    SummaryResponse,
    TeamNameRequest,
    UserResponse,
    WinnerImageRequest,
)
from .bid_validator import NOT_GIVEN
from .errors import InvalidTransitionError, NotAuthorizedError, UnknownUserError
from .service import AuctionService

logger = logging.getLogger(__name__)

# How often a WebSocket pump wakes up when no snapshot arrives
WS_POLL_SEC = 1.0


def create_app(service: AuctionService) -> FastAPI:
    """
    Build the API around one service instance.

    The service is started when the app starts and shut down with it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(
        title=config.API_TITLE,
        description="Live fantasy-football auction: commands in, snapshots out",
        version=config.API_VERSION,
        lifespan=lifespan
    )

    # CORS middleware for web UI access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service

    # ===== Helpers =====

    def require_actor(user_id: Optional[str]) -> str:
        if not user_id:
            raise HTTPException(status_code=401, detail=f"Missing {config.USER_ID_HEADER} header")
        return user_id

    def snapshot_payload(snapshot) -> SnapshotResponse:
        data = snapshot.data
        remaining = 0.0
        if data['status'] == 'BIDDING' and data['countdown_end'] is not None:
            remaining = max(0.0, data['countdown_end'] - service.clock())
        elif data['status'] == 'PAUSED' and data['countdown_remaining'] is not None:
            remaining = data['countdown_remaining']
        return SnapshotResponse(
            version=snapshot.version,
            published_at=snapshot.published_at,
            remaining_seconds=remaining,
            state=data
        )

    def call(action: str, command: Callable[[], object]):
        """
        Run a service command and map domain errors to HTTP errors.

        Returns:
            Whatever the command returns

        Raises:
            400 Bad Request: Invalid input (bad pool, bad queue, empty names)
            403 Forbidden: Caller may not issue this command
            404 Not Found: Unknown user
            409 Conflict: Command not allowed in the current status
            500 Internal Server Error: Anything unexpected
        """
        try:
            return command()

        except HTTPException:
            raise

        except InvalidTransitionError as e:
            logger.warning(f"Cannot {action}: {e}")
            raise HTTPException(status_code=409, detail=str(e))

        except NotAuthorizedError as e:
            logger.warning(f"Cannot {action}: {e}")
            raise HTTPException(status_code=403, detail=str(e))

        except UnknownUserError as e:
            logger.warning(f"Cannot {action}: {e}")
            raise HTTPException(status_code=404, detail=str(e))

        except ValueError as e:
            logger.warning(f"Cannot {action}: {e}")
            raise HTTPException(status_code=400, detail=str(e))

        except Exception as e:
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Failed to {action}: {e}")

    def execute(action: str, command: Callable[[], object], message: str) -> CommandResponse:
        """Run a state-changing command and report the version it produced."""
        call(action, command)
        return CommandResponse(success=True, message=message, version=service.snapshot().version)

    # ===== Read endpoints =====

    @app.get("/health")
    def health():
        snapshot = service.snapshot()
        return {"status": "ok", "version": snapshot.version, "auction_status": snapshot.data['status']}

    @app.get("/auction/config", response_model=AuctionConfigResponse)
    def get_auction_config():
        """Static auction rules."""
        return AuctionConfigResponse(
            roles=config.ROLES,
            role_limits=config.ROLE_LIMITS,
            squad_size=config.SQUAD_SIZE,
            default_initial_credits=config.DEFAULT_INITIAL_CREDITS,
            opening_countdown_sec=config.OPENING_COUNTDOWN_SEC,
            bid_countdown_sec=config.BID_COUNTDOWN_SEC,
            sold_display_delay_sec=config.SOLD_DISPLAY_DELAY_SEC,
            test_opening_countdown_sec=config.TEST_OPENING_COUNTDOWN_SEC,
            test_bid_countdown_sec=config.TEST_BID_COUNTDOWN_SEC,
            test_sold_display_delay_sec=config.TEST_SOLD_DISPLAY_DELAY_SEC,
            clubs=config.SERIE_A_CLUBS,
            user_id_header=config.USER_ID_HEADER
        )

    @app.get("/auction/snapshot", response_model=SnapshotResponse)
    def get_snapshot(
        after_version: Optional[int] = Query(None, description="Version the client already holds"),
        wait: float = Query(0, ge=0, description="Seconds to wait for a newer version")
    ):
        """
        Latest snapshot, or long-poll for one newer than after_version.

        A response with version == after_version means the wait timed out.
        """
        if after_version is None or wait <= 0:
            return snapshot_payload(service.snapshot())

        timeout = min(wait, config.MAX_LONG_POLL_SEC)
        return snapshot_payload(service.wait_for_version(after_version, timeout))

    @app.websocket("/auction/ws")
    async def auction_websocket(websocket: WebSocket):
        """Stream every snapshot, current one first. Incoming text is ignored."""
        await websocket.accept()
        subscription = service.subscribe()

        async def pump():
            while True:
                snapshot = await run_in_threadpool(subscription.get, WS_POLL_SEC)
                if snapshot is not None:
                    await websocket.send_json(snapshot_payload(snapshot).model_dump())

        pump_task = asyncio.create_task(pump())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("WebSocket subscriber disconnected")
        finally:
            pump_task.cancel()
            subscription.close()
            try:
                await pump_task
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass
            except Exception as e:
                logger.warning(f"WebSocket pump stopped: {e}")

    @app.get("/auction/summary", response_model=SummaryResponse)
    def get_summary():
        """Credits, spend and role counts per team."""
        try:
            df = team_summary(service.state())
            return SummaryResponse(teams=json.loads(df.to_json(orient='records')))
        except Exception as e:
            logger.error(f"Failed to build summary: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Failed to build summary: {e}")

    # ===== Participant endpoints =====

    @app.post("/users/register", response_model=UserResponse)
    def register_user(
        request: RegisterUserRequest,
        x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)
    ):
        """Create the caller's user record if it does not exist yet."""
        user_id = require_actor(x_user_id)
        user = call(f"register {user_id}", lambda: service.register_user(user_id, request.name))
        return UserResponse(**user.to_dict())

    @app.post("/users/{user_id}/ready", response_model=CommandResponse)
    def set_user_ready(user_id: str, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "set ready", lambda: service.set_user_ready(actor, user_id), f"{user_id} is ready"
        )

    @app.put("/users/{user_id}/team-name", response_model=CommandResponse)
    def set_team_name(
        user_id: str,
        request: TeamNameRequest,
        x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)
    ):
        actor = require_actor(x_user_id)
        return execute(
            "rename team",
            lambda: service.set_team_name(actor, user_id, request.team_name),
            f"Team renamed to {request.team_name}"
        )

    @app.put("/users/{user_id}/profile-picture", response_model=CommandResponse)
    def set_profile_picture(
        user_id: str,
        request: ProfilePictureRequest,
        x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)
    ):
        actor = require_actor(x_user_id)
        return execute(
            "set profile picture",
            lambda: service.set_profile_picture(actor, user_id, request.profile_picture),
            "Profile picture updated"
        )

    @app.post("/auction/bids", response_model=BidResponse)
    def place_bid(request: BidRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        """
        Bid as the caller on the player under auction.

        Raises:
            409 Conflict: Bid rejected; detail carries reason and message
        """
        actor = require_actor(x_user_id)
        expected = NOT_GIVEN
        if 'expected_current_amount' in request.model_fields_set:
            expected = request.expected_current_amount

        try:
            result = service.place_bid(actor, request.amount, expected)
        except Exception as e:
            logger.error(f"Failed to place bid: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Failed to place bid: {e}")

        if not result.ok:
            raise HTTPException(
                status_code=409,
                detail={"reason": result.reason.value, "message": result.message}
            )
        return BidResponse(version=service.snapshot().version, **result.to_dict())

    # ===== Admin endpoints =====

    @app.put("/admin/players", response_model=CommandResponse)
    def set_players(request: SetPlayersRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        """Replace the whole player pool; the queue follows pool order."""
        actor = require_actor(x_user_id)
        records = [p.model_dump() for p in request.players]
        return execute(
            "set players", lambda: service.set_players(actor, records), f"{len(records)} players loaded"
        )

    @app.post("/admin/players", response_model=CommandResponse)
    def add_player(request: PlayerIn, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "add player", lambda: service.add_player(actor, request.model_dump()), f"Added {request.name}"
        )

    @app.put("/admin/queue", response_model=CommandResponse)
    def set_auction_queue(request: QueueRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "set queue", lambda: service.set_auction_queue(actor, request.order), f"Queue set ({len(request.order)} players)"
        )

    @app.post("/admin/queue/requeue", response_model=CommandResponse)
    def requeue_player(request: RequeueRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "requeue player", lambda: service.requeue_player(actor, request.player_id), f"Requeued {request.player_id}"
        )

    @app.post("/admin/users", response_model=UserResponse)
    def add_user(request: AddUserRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        created = {}

        def command():
            created['user'] = service.add_user(actor, request.name)

        execute("add user", command, f"Added {request.name}")
        return UserResponse(**created['user'].to_dict())

    @app.put("/admin/logos", response_model=CommandResponse)
    def set_custom_logo(request: CustomLogoRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "set logo", lambda: service.set_custom_logo(actor, request.club, request.url), f"Logo set for {request.club}"
        )

    @app.put("/admin/winner-image", response_model=CommandResponse)
    def set_winner_image(request: WinnerImageRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute(
            "set winner image", lambda: service.set_winner_image(actor, request.url), "Winner image updated"
        )

    @app.post("/admin/initialize", response_model=CommandResponse)
    def initialize_auction(request: InitializeRequest, x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        logger.info(f"Initializing auction with {request.initial_credits} credits")
        return execute(
            "initialize auction",
            lambda: service.initialize_auction(actor, request.initial_credits),
            "Auction initialized; waiting for users to be ready"
        )

    @app.post("/admin/start", response_model=CommandResponse)
    def start_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("start auction", lambda: service.start_auction(actor), "Auction started")

    @app.post("/admin/pause", response_model=CommandResponse)
    def pause_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("pause auction", lambda: service.pause(actor), "Auction paused")

    @app.post("/admin/resume", response_model=CommandResponse)
    def resume_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("resume auction", lambda: service.resume(actor), "Auction resumed")

    @app.post("/admin/stop", response_model=CommandResponse)
    def stop_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        """Sell the current player immediately."""
        actor = require_actor(x_user_id)
        return execute("stop bidding", lambda: service.stop(actor), "Current player sold")

    @app.post("/admin/reset", response_model=CommandResponse)
    def reset_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("reset auction", lambda: service.reset(actor), "Auction reset")

    @app.post("/admin/test/start", response_model=CommandResponse)
    def start_test_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("start test auction", lambda: service.start_test_auction(actor), "Test auction started")

    @app.post("/admin/test/stop", response_model=CommandResponse)
    def stop_test_auction(x_user_id: Optional[str] = Header(None, alias=config.USER_ID_HEADER)):
        actor = require_actor(x_user_id)
        return execute("stop test auction", lambda: service.stop_test_auction(actor), "Test auction stopped")

    return app
