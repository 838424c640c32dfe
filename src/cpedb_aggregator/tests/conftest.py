"""Shared test fixtures for the cpedb_aggregator test suite.

Sample data follows the NVD CPE API 2.0 response shape
(https://services.nvd.nist.gov/rest/json/cpes/2.0/).
"""

from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from cpedb_aggregator.api_client import ApiClient, ApiConfig
from cpedb_aggregator.config import Config


def make_product(
    cpe_name: str,
    cpe_name_id: str,
    title: str = "",
    deprecated: bool = False,
    deprecated_by: List[str] | None = None,
) -> Dict[str, Any]:
    return {
        "cpe": {
            "deprecated": deprecated,
            "cpeName": cpe_name,
            "cpeNameId": cpe_name_id,
            "lastModified": "2024-03-01T12:00:00.000",
            "created": "2007-08-23T21:05:57.937",
            "titles": [{"title": title or cpe_name, "lang": "en"}],
            "deprecatedBy": [
                {"cpeName": name, "cpeNameId": f"{cpe_name_id}-succ{i}"}
                for i, name in enumerate(deprecated_by or [])
            ],
        }
    }


def make_response(products: List[Dict[str, Any]], total: int, start_index: int = 0, per_page: int = 10) -> Dict[str, Any]:
    return {
        "resultsPerPage": per_page,
        "startIndex": start_index,
        "totalResults": total,
        "format": "NVD_CPE",
        "version": "2.0",
        "timestamp": "2024-03-02T00:00:00.000",
        "products": products,
    }


@pytest.fixture()
def product_factory():
    return make_product


@pytest.fixture()
def response_factory():
    return make_response


@pytest.fixture()
def sample_products() -> List[Dict[str, Any]]:
    """Two products that land in two different shards."""
    return [
        make_product(
            "cpe:2.3:a:apache:http_server:2.4.1:*:*:*:*:*:*:*",
            "0A0B0C0D-0000-4000-8000-000000000001",
            title="Apache HTTP Server 2.4.1",
        ),
        make_product(
            "cpe:2.3:o:linux:linux_kernel:6.1:*:*:*:*:*:*:*",
            "0A0B0C0D-0000-4000-8000-000000000002",
            title="Linux Kernel 6.1",
        ),
    ]


def _api_config(**overrides) -> ApiConfig:
    defaults = {
        "base_url": "https://services.test/rest/json/cpes/2.0/",
        "timeout_seconds": 5,
        "results_per_page": 10,
        "max_concurrency": 3,
        "rate_limit_per_minute": 1000,  # high enough that tests never wait
        "max_window_days": 119,
        "retry": {
            "max_attempts": 1,
            "base_delay_seconds": 0.001,
            "max_delay_seconds": 0.01,
        },
    }
    defaults.update(overrides)
    return ApiConfig(**defaults)


@pytest.fixture()
async def make_client():
    """Build ApiClients backed by ``httpx.MockTransport``; closed on teardown."""
    clients: List[ApiClient] = []

    def _make(handler, **overrides) -> ApiClient:
        client = ApiClient("test-key", _api_config(**overrides), transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.close()


@pytest.fixture()
def sample_config(tmp_path) -> Config:
    return Config({
        "output_dir": str(tmp_path / "out"),
        "state_file": ".update_date",
        "checkpoint_policy": "conservative",
        "api": {
            "base_url": "https://services.test/rest/json/cpes/2.0/",
            "timeout_seconds": 5,
            "results_per_page": 10,
            "max_concurrency": 3,
            "rate_limit_per_minute": 1000,
            "max_window_days": 119,
            "retry": {"max_attempts": 1},
        },
    })
