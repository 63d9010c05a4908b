"""
Tests for HttpTransport

Tests the aiohttp-based transport with a mocked client session:
- Membership probing
- Packet delivery and failure reporting
"""
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import aiohttp
import pytest

from siblingcast.config.loader import SiblingConfig
from siblingcast.protocol.packet import Packet
from siblingcast.transport.http import HttpTransport
from siblingcast.utils.exceptions import MembershipError


def _context(response):
    """Async context manager yielding a response"""
    cm = MagicMock()
    cm.__aenter__.return_value = response
    cm.__aexit__.return_value = False
    return cm


def _response(status=200, body=None):
    response = Mock()
    response.status = status
    response.json = AsyncMock(return_value=body or {})
    return response


@pytest.fixture
def transport():
    """Create a transport with a three-worker roster"""
    roster = [
        SiblingConfig(process_id=str(i), instance_id=f"roster-{i}", url=f"http://127.0.0.1:{9100 + i}")
        for i in range(3)
    ]
    return HttpTransport("0", "api", roster, probe_timeout=0.5)


@pytest.fixture
def packet():
    return Packet(
        correlation_id="c1",
        topic="metrics-get",
        sender_id="0",
        reply_to="0",
        origin_id="0",
        instance_id="roster-0",
        payload={},
    )


@pytest.mark.asyncio
async def test_list_siblings_keeps_online_members(transport):
    """Test probing filters out stopping and unreachable workers"""
    responses = {
        "http://127.0.0.1:9100/cluster/health": _context(_response(body={
            "status": "online", "service": "api", "instance_id": "a"
        })),
        "http://127.0.0.1:9101/cluster/health": _context(_response(body={
            "status": "stopping", "service": "api", "instance_id": "b"
        })),
    }

    def fake_get(url, **kwargs):
        if url not in responses:
            raise aiohttp.ClientConnectionError("connection refused")
        return responses[url]

    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.get.side_effect = fake_get

        siblings = await transport.list_siblings()

    assert [(s.process_id, s.instance_id, s.status) for s in siblings] == [("0", "a", "online")]


@pytest.mark.asyncio
async def test_list_siblings_ignores_other_services(transport):
    """Test workers of another service are not siblings"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.get.return_value = _context(_response(body={
            "status": "online", "service": "billing"
        }))

        assert await transport.list_siblings() == []


@pytest.mark.asyncio
async def test_list_siblings_falls_back_to_roster_instance_id(transport):
    """Test missing instance ids come from the roster"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.get.return_value = _context(_response(body={
            "status": "online", "service": "api"
        }))

        siblings = await transport.list_siblings()

    assert [s.instance_id for s in siblings] == ["roster-0", "roster-1", "roster-2"]


@pytest.mark.asyncio
async def test_list_siblings_non_200_is_offline(transport):
    """Test unhealthy responses drop the worker"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.get.return_value = _context(_response(status=503))

        assert await transport.list_siblings() == []


@pytest.mark.asyncio
async def test_list_siblings_non_object_body_is_offline(transport):
    """Test a health endpoint answering a JSON list drops the worker"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.get.return_value = _context(_response(body=["online"]))

        assert await transport.list_siblings() == []


@pytest.mark.asyncio
async def test_empty_roster_is_membership_failure():
    """Test a clustered worker without roster cannot broadcast"""
    transport = HttpTransport("0", "api", [])

    with pytest.raises(MembershipError):
        await transport.list_siblings()


@pytest.mark.asyncio
async def test_send_to_posts_packet(transport, packet):
    """Test packets are POSTed in wire shape"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.post.return_value = _context(_response(status=202))

        result = await transport.send_to("1", packet)

        call = mock_session.return_value.post.call_args

    assert result.ok is True
    assert result.target_id == "1"
    assert call.args[0] == "http://127.0.0.1:9101/cluster/packets"
    assert call.kwargs["json"] == packet.to_dict()


@pytest.mark.asyncio
async def test_send_to_reports_http_error(transport, packet):
    """Test non-2xx answers become failed results"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.post.return_value = _context(_response(status=500))

        result = await transport.send_to("1", packet)

    assert result.ok is False
    assert result.error == "HTTP 500"


@pytest.mark.asyncio
async def test_send_to_reports_connection_error(transport, packet):
    """Test connection errors never raise"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.post.side_effect = aiohttp.ClientConnectionError("refused")

        result = await transport.send_to("2", packet)

    assert result.ok is False
    assert "refused" in result.error


@pytest.mark.asyncio
async def test_send_to_unknown_process(transport, packet):
    """Test sends outside the roster fail without I/O"""
    result = await transport.send_to("42", packet)

    assert result.ok is False
    assert result.error == "not in roster"


@pytest.mark.asyncio
async def test_start_and_stop_manage_session(transport):
    """Test the client session lifecycle"""
    with patch("aiohttp.ClientSession") as mock_session:
        mock_session.return_value.close = AsyncMock()

        await transport.start()
        await transport.stop()

        mock_session.return_value.close.assert_awaited_once()
