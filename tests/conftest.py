"""
Pytest configuration and fixtures for Azure Flow Investigator tests.
"""

import gzip
import json
from datetime import datetime, timezone

import pytest

from azure_flow_investigator.models import FlowRecord

LEGACY_TUPLE = "1705312800,10.0.0.4,13.107.42.14,49152,443,T,O,A,B,1,100,1,200"
VNET_TUPLE = "1770152393932,10.2.0.15,20.62.132.27,53312,443,6,O,E,NX,15,3027,17,10709"


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep log files and stored results out of the real home directory."""
    monkeypatch.setenv("AZURE_FLOW_INVESTIGATOR_HOME", str(tmp_path / "home"))
    return tmp_path / "home"


@pytest.fixture
def legacy_tuple():
    return LEGACY_TUPLE


@pytest.fixture
def vnet_tuple():
    return VNET_TUPLE


@pytest.fixture
def nsg_document():
    """NSG (v2) flow-log blob with two rules and a list of tuples each."""
    return {
        "records": [
            {
                "time": "2024-01-15T10:00:00.0000000Z",
                "systemId": "2a2c5d6e-0000-0000-0000-000000000000",
                "category": "NetworkSecurityGroupFlowEvent",
                "resourceId": "/SUBSCRIPTIONS/0000/RESOURCEGROUPS/RG/PROVIDERS/MICROSOFT.NETWORK/NETWORKSECURITYGROUPS/WEB-NSG",
                "operationName": "NetworkSecurityGroupFlowEvents",
                "properties": {
                    "Version": 2,
                    "flows": [
                        {
                            "rule": "DefaultRule_AllowInternetOutBound",
                            "flows": [
                                {
                                    "mac": "000D3AF87856",
                                    "flowTuples": [
                                        LEGACY_TUPLE,
                                        "1705312860,10.0.0.4,52.239.170.36,49153,443,T,O,A,C,3,600,2,400",
                                    ],
                                }
                            ],
                        },
                        {
                            "rule": "UserRule_DenyRDP",
                            "flows": [
                                {
                                    "mac": "000D3AF87856",
                                    "flowTuples": "1705312900,185.220.101.7,10.0.0.4,51000,3389,T,I,D,B,,,, "
                                    "1705312901,185.220.101.8,10.0.0.4,51001,3389,T,I,D,B,,,,",
                                }
                            ],
                        },
                    ],
                },
            }
        ]
    }


@pytest.fixture
def vnet_document():
    """VNET (v4) flow-log blob with a space-separated tuple string."""
    return {
        "records": [
            {
                "time": "2026-02-03T20:59:53.9320000Z",
                "flowLogVersion": 4,
                "flowLogGUID": "66aa66aa-0000-0000-0000-000000000000",
                "macAddress": "00224871C205",
                "category": "FlowLogFlowEvent",
                "flowLogResourceID": "/SUBSCRIPTIONS/0000/RESOURCEGROUPS/NETWORKWATCHERRG/PROVIDERS/MICROSOFT.NETWORK/NETWORKWATCHERS/NW/FLOWLOGS/VNETFLOWLOG",
                "targetResourceID": "/subscriptions/0000/resourceGroups/rg/providers/Microsoft.Network/virtualNetworks/hub-vnet",
                "operationName": "FlowLogFlowEvent",
                "flowRecords": {
                    "flows": [
                        {
                            "aclID": "00000000-1234-abcd-0000-000000000000",
                            "flowGroups": [
                                {
                                    "rule": "DefaultRule_AllowInternetOutBound",
                                    "flowTuples": f"{VNET_TUPLE}  "
                                    "1770152394120,10.2.0.15,168.63.129.16,53313,80,6,O,B,NX,0,0,0,0 ",
                                },
                                {
                                    "rule": "DefaultRule_AllowVnetInBound",
                                    "flowTuples": "1770152394407,10.2.0.20,10.2.0.15,40000,22,6,I,C,X,4,812,5,1940",
                                },
                            ],
                        }
                    ]
                },
            }
        ]
    }


@pytest.fixture
def write_log_file(tmp_path):
    """Write a document to disk, gzip-compressed when the name ends in .gz."""

    def _write(name, document):
        path = tmp_path / name
        payload = json.dumps(document).encode("utf-8")
        if name.endswith(".gz"):
            path.write_bytes(gzip.compress(payload))
        else:
            path.write_bytes(payload)
        return str(path)

    return _write


def make_record(source_ip, destination_ip, **kwargs):
    """Build a FlowRecord with sensible defaults for filter tests."""
    defaults = {
        "timestamp": datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        "source_port": 49152,
        "destination_port": 443,
        "protocol": "TCP",
        "direction": "Outbound",
        "action": "Allowed",
    }
    defaults.update(kwargs)
    return FlowRecord(source_ip=source_ip, destination_ip=destination_ip, **defaults)


@pytest.fixture
def sample_records():
    return [
        make_record("10.0.0.4", "13.107.42.14"),
        make_record("10.0.0.4", "168.63.129.16"),
        make_record("52.239.170.36", "10.0.0.5"),
        make_record("10.0.0.5", "8.8.8.8"),
        make_record("192.168.1.10", "10.0.0.4"),
    ]


@pytest.fixture
def record_factory():
    return make_record
