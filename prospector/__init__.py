"""
Prospector - Prospect discovery on top of Exa Websets.

Describe a population of people or companies, and Prospector finds them
through a webset, reusing websets it already paid for and streaming matches
as they arrive.

CLI Usage:
    prospector search "CTOs at Berlin fintech startups" -c job_title:CTO -e email -n 10
    prospector status ws_abc123 --target 10
    prospector serve  # Start the HTTP API

Library Usage:
    from prospector import discover_prospects

    results = discover_prospects("CTOs at Berlin fintech startups", target_count=10)
    for p in results:
        print(f"{p.full_name}: {p.fit_score}")
"""

__version__ = "1.0.0"

VERSION_INFO = {
    "major": 1,
    "minor": 0,
    "patch": 0,
    "release": "stable",  # stable, beta, alpha
}


def get_version() -> str:
    """Get full version string."""
    version = f"{VERSION_INFO['major']}.{VERSION_INFO['minor']}.{VERSION_INFO['patch']}"
    if VERSION_INFO["release"] != "stable":
        version += f"-{VERSION_INFO['release']}"
    return version


from prospector.api import discover_prospects, discover, DiscoveryFailed

__all__ = ["discover_prospects", "discover", "DiscoveryFailed", "__version__", "get_version", "VERSION_INFO"]
