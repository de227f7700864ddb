"""
Distribution Custom Headers
===========================
Rewrites the origin custom-header value inside a CDN distribution config.

The config follows the CloudFront shape:

    {"Origins": {"Items": [
        {"Id": "...", "CustomHeaders": {"Items": [
            {"HeaderName": "X-Sec-Api-Key", "HeaderValue": "..."}
        ]}}
    ]}}
"""

from typing import Any, Dict


def update_custom_header(distribution_config: Dict[str, Any], name: str, value: str) -> int:
    """
    Set `value` on every origin custom header called `name` (case-insensitive).

    Args:
        distribution_config: Distribution config, modified in place
        name: Header name
        value: New header value

    Returns:
        Number of headers updated
    """
    wanted = name.lower()
    updated = 0
    origins = (distribution_config.get("Origins") or {}).get("Items") or []
    for origin in origins:
        headers = (origin.get("CustomHeaders") or {}).get("Items") or []
        for header in headers:
            if str(header.get("HeaderName", "")).lower() == wanted:
                header["HeaderValue"] = value
                updated += 1
                break
    return updated
