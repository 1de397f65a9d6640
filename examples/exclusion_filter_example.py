#!/usr/bin/env python3
"""
Example of parsing a VNET flow-log document and dropping traffic to
excluded addresses and ranges.
"""

from azure_flow_investigator import filter_records, parse_log_document

def main():
    document = {
        "records": [
            {
                "time": "2026-02-03T20:59:53.9320000Z",
                "flowLogVersion": 4,
                "macAddress": "00224871C205",
                "flowRecords": {
                    "flows": [
                        {
                            "aclID": "00000000-1234-abcd-0000-000000000000",
                            "flowGroups": [
                                {
                                    "rule": "DefaultRule_AllowInternetOutBound",
                                    "flowTuples": (
                                        "1770152393932,10.2.0.15,20.62.132.27,53312,443,6,O,E,NX,15,3027,17,10709 "
                                        "1770152394120,10.2.0.15,168.63.129.16,53313,80,6,O,B,NX,0,0,0,0 "
                                        "1770152394407,10.2.0.15,52.239.170.36,53314,443,6,O,C,NX,4,812,5,1940"
                                    ),
                                }
                            ],
                        }
                    ]
                },
            }
        ]
    }

    records = parse_log_document(document, "example.json")
    print(f"Parsed {len(records)} flow records")

    # Azure platform endpoint and one storage range
    kept = filter_records(
        records,
        exclude_ips=["168.63.129.16"],
        exclude_cidrs=["52.239.0.0/16"],
        progress_callback=lambda progress: print(progress.message),
    )

    for record in kept:
        print(
            f"{record.timestamp:%H:%M:%S} {record.source_ip} -> {record.destination_ip}:"
            f"{record.destination_port} {record.protocol} {record.action} "
            f"{record.flow_state} {record.total_bytes} bytes"
        )

if __name__ == "__main__":
    main()
