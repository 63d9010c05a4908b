"""
siblingcast worker HTTP surface - FastAPI app

Provides the endpoints siblings use to reach this worker and the
Prometheus scrape endpoint serving the cluster-wide metrics.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from ..cluster.node import ClusterNode
from ..protocol.packet import Packet
from ..utils.exceptions import BroadcastTimeoutError, MembershipError
from ..utils.logging import logger

router = APIRouter()


class PacketBody(BaseModel):
    """Wire shape of an inbound packet"""
    correlation_id: str
    topic: str
    sender_id: str
    reply_to: str
    origin_id: str
    instance_id: str = ""
    payload: Optional[Any] = None
    is_reply: bool = False


def get_node(request: Request) -> ClusterNode:
    return request.app.state.node


@router.post("/cluster/packets", status_code=202)
async def receive_packet(body: PacketBody, request: Request) -> Dict[str, Any]:
    """
    Accept one packet from a sibling.

    The packet goes into this worker's inbound stream; the sender never
    learns whether anyone was interested in it.
    """
    node = get_node(request)
    delivered = node.transport.inbound.dispatch(Packet(**body.model_dump()))
    return {"accepted": True, "subscribers": delivered}


@router.get("/cluster/health")
async def health(request: Request) -> Dict[str, Any]:
    """Identity and liveness, used by sibling membership probes."""
    return get_node(request).get_status()


@router.get("/metrics")
async def metrics(request: Request, timeout: Optional[float] = None) -> Response:
    """
    Prometheus exposition of the cluster-wide metrics.

    Returns 503 when the siblings could not be listed or did not all
    answer in time.
    """
    node = get_node(request)
    try:
        registry = await node.get_aggregate(timeout)
    except (BroadcastTimeoutError, MembershipError) as e:
        logger.warning(f"Aggregate metrics unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


def create_app(node: ClusterNode) -> FastAPI:
    """
    Create the FastAPI app of one worker.

    Args:
        node: Cluster node served by this app

    Returns:
        App whose lifespan starts and stops the node
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting worker {node.identity.self_id}")
        await node.start()
        yield
        await node.stop()
        logger.info(f"Worker {node.identity.self_id} shut down")

    app = FastAPI(title="siblingcast worker", lifespan=lifespan)
    app.state.node = node
    app.include_router(router)
    return app
