"""
Pytest configuration and shared fixtures.

Key fixtures:
- client_factory: builds httpx.AsyncClient instances backed by a
  MockTransport, so no test touches the network
- echo_handler: MockTransport handler that answers 200 and echoes the
  request method and body
"""

import sys
from pathlib import Path

import httpx
import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)


def make_client_factory(handler):
    """Return a client factory whose clients route through ``handler``."""
    transport = httpx.MockTransport(handler)
    return lambda: httpx.AsyncClient(transport=transport)


async def echo_handler(request: httpx.Request) -> httpx.Response:
    """Answer 200 with '<METHOD> <body>'."""
    body = await request.aread()
    return httpx.Response(200, content=request.method.encode() + b' ' + body)


@pytest.fixture
def client_factory():
    """Client factory backed by the echo handler."""
    return make_client_factory(echo_handler)
